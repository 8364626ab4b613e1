"""Key/value transport contract (publish, subscribe, query) and an in-process implementation.

Key expressions are '/'-separated; ``*`` matches exactly one non-empty
segment and ``**`` matches zero or more segments.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from common.exceptions import TransportError
from common.protocol import ChangeKind, Encoding, Sample

logger = logging.getLogger(__name__)

_CLOSED = object()


def key_expr_matches(key_expr: str, key: str) -> bool:
    """
    Check whether ``key`` falls under the key expression ``key_expr``.

    Args:
        key_expr: Pattern, may contain '*' and '**' segments
        key: Concrete key

    Returns:
        True if the key matches the pattern
    """
    return _match_segments(tuple(key_expr.split('/')), tuple(key.split('/')))


def _match_segments(pattern: tuple, segments: tuple) -> bool:
    if not pattern:
        return not segments
    head, rest = pattern[0], pattern[1:]
    if head == '**':
        return any(_match_segments(rest, segments[i:]) for i in range(len(segments) + 1))
    if not segments:
        return False
    if head == '*':
        return segments[0] != '' and _match_segments(rest, segments[1:])
    return head == segments[0] and _match_segments(rest, segments[1:])


def validate_key(key: str) -> None:
    """
    Reject keys that cannot be published to.

    Raises:
        TransportError: If the key is empty or contains wildcards
    """
    if not key or '*' in key:
        raise TransportError(f"Cannot publish to key expression {key!r}")


class _QueueStream:
    """Async iterator fed through an asyncio.Queue, ended by close()."""

    def __init__(self, key_expr: str, on_close: Optional[Callable] = None):
        self.key_expr = key_expr
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, item) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the stream terminated for any further readers.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)


class Subscription(_QueueStream):
    """Live feed of samples published under ``key_expr``."""
    pass


class Queryable(_QueueStream):
    """Feed of queries addressed to selectors under ``key_expr``."""

    async def close(self) -> None:
        if self.closed:
            return
        unanswered = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                unanswered.append(item)
        await super().close()
        # Queries nobody will serve any more must not leave their querier waiting.
        for query in unanswered:
            await query.finish()


class Query(ABC):
    """
    An inbound query as seen by a queryable.

    The responder calls ``reply`` zero or more times and then ``finish``
    exactly once.
    """

    def __init__(self, selector: str):
        self.selector = selector

    @abstractmethod
    async def reply(self, sample: Sample) -> None:
        """Send one reply sample to the querier."""

    @abstractmethod
    async def finish(self) -> None:
        """Signal that no further replies will follow."""


class Transport(ABC):
    """
    Distributed key/value space offering publish, subscribe and query.

    All implementations deliver publications without ordering guarantees
    across keys and without retries.
    """

    # Largest payload one publish or reply can carry; None means unbounded.
    max_payload_bytes: Optional[int] = None

    @abstractmethod
    async def publish(
        self,
        key: str,
        payload: bytes,
        encoding: Encoding = Encoding.OCTET_STREAM,
        kind: ChangeKind = ChangeKind.PUT
    ) -> int:
        """
        Publish a payload at ``key``.

        Returns:
            Number of subscribers the sample was handed to
        """

    async def delete(self, key: str) -> int:
        """Publish a retraction of ``key``."""
        return await self.publish(key, b'', Encoding.OCTET_STREAM, ChangeKind.DELETE)

    @abstractmethod
    async def subscribe(self, key_expr: str) -> Subscription:
        """Open a live feed of samples published under ``key_expr``."""

    @abstractmethod
    async def query(self, selector: str, timeout: Optional[float] = None) -> List[Sample]:
        """
        Ask every matching queryable for ``selector`` and collect the replies.

        Args:
            selector: Key to query
            timeout: Seconds to wait for responders; None waits indefinitely

        Returns:
            All replies received, possibly empty
        """

    @abstractmethod
    async def register_queryable(self, key_expr: str) -> Queryable:
        """Install a responder feed for selectors under ``key_expr``."""

    @abstractmethod
    async def close(self) -> None:
        """Release all subscriptions, queryables and connections."""


class _LocalQuery(Query):
    """Query delivered within one process."""

    def __init__(self, selector: str):
        super().__init__(selector)
        self.replies: List[Sample] = []
        self.done = asyncio.Event()

    async def reply(self, sample: Sample) -> None:
        if self.done.is_set():
            raise TransportError(f"Query {self.selector!r} already finished")
        self.replies.append(sample)

    async def finish(self) -> None:
        self.done.set()


class InMemoryTransport(Transport):
    """
    In-process transport: every subscriber and queryable lives on the same event loop.

    Used for tests and single-process deployments.
    """

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._queryables: List[Queryable] = []
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportError("Transport is closed")

    async def publish(
        self,
        key: str,
        payload: bytes,
        encoding: Encoding = Encoding.OCTET_STREAM,
        kind: ChangeKind = ChangeKind.PUT
    ) -> int:
        self._ensure_open()
        validate_key(key)
        sample = Sample(key=key, payload=payload, encoding=encoding, kind=kind)

        delivered = 0
        for subscription in list(self._subscriptions):
            if key_expr_matches(subscription.key_expr, key):
                subscription.deliver(sample)
                delivered += 1
        logger.debug(f"Published {kind.value} {key} ({len(payload)} bytes) to {delivered} subscribers")
        return delivered

    async def subscribe(self, key_expr: str) -> Subscription:
        self._ensure_open()
        subscription = Subscription(key_expr, on_close=self._subscriptions.remove)
        self._subscriptions.append(subscription)
        return subscription

    async def query(self, selector: str, timeout: Optional[float] = None) -> List[Sample]:
        self._ensure_open()
        queries = []
        for queryable in list(self._queryables):
            if key_expr_matches(queryable.key_expr, selector):
                query = _LocalQuery(selector)
                queryable.deliver(query)
                queries.append(query)

        if not queries:
            return []

        waiters = [asyncio.ensure_future(query.done.wait()) for query in queries]
        _, pending = await asyncio.wait(waiters, timeout=timeout)
        for waiter in pending:
            waiter.cancel()
        if pending:
            logger.warning(f"Query {selector} timed out with {len(pending)} responders pending")

        return [reply for query in queries for reply in query.replies]

    async def register_queryable(self, key_expr: str) -> Queryable:
        self._ensure_open()
        queryable = Queryable(key_expr, on_close=self._queryables.remove)
        self._queryables.append(queryable)
        return queryable

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for stream in list(self._subscriptions) + list(self._queryables):
            await stream.close()
