"""gRPC server implementation for the key space broker."""

import asyncio
import uuid
import grpc
from grpc import aio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Set, Tuple

from common.constants import BROKER_SERVICE_NAME, GRPC_MAX_MESSAGE_BYTES, QUERY_TIMEOUT_SECONDS
from common.exceptions import TransportError
from common.protocol import (
    PublishResponse,
    QueryRequest,
    Sample,
    ServeMessage,
    SubscribeRequest,
)
from common.transport import key_expr_matches, validate_key

logger = logging.getLogger(__name__)


@dataclass
class _SubscriberSession:
    subscriber_id: str
    key_expr: str
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)


@dataclass
class _QueryableSession:
    queryable_id: str
    key_expr: str
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    outstanding: Set[str] = field(default_factory=set)


@dataclass
class _PendingQuery:
    selector: str
    remaining: Set[str]
    # (queryable_id, sample) pairs; a None sample marks that responder as finished.
    replies: asyncio.Queue = field(default_factory=asyncio.Queue)


class BrokerServicer:
    """
    gRPC service implementation of the publish/subscribe/query key space.
    """

    def __init__(self, query_timeout: float = QUERY_TIMEOUT_SECONDS):
        """
        Initialize servicer with empty routing tables.

        Args:
            query_timeout: Seconds a query waits for responders when the querier sets no timeout
        """
        self.query_timeout = query_timeout
        self._subscribers: Dict[str, _SubscriberSession] = {}
        self._queryables: Dict[str, _QueryableSession] = {}
        self._pending: Dict[str, _PendingQuery] = {}

    async def Publish(
        self,
        request_bytes: bytes,
        context: grpc.aio.ServicerContext
    ) -> bytes:
        """
        Handle Publish RPC (unary).
        Fans the sample out to every subscriber whose key expression matches.

        Args:
            request_bytes: Serialized Sample
            context: gRPC context

        Returns:
            Serialized PublishResponse
        """
        try:
            sample = Sample.from_json(request_bytes)
            validate_key(sample.key)
        except (TransportError, ValueError, KeyError) as e:
            logger.warning(f"Rejected publication: {e}")
            return PublishResponse(success=False, error_message=str(e)).to_json()

        delivered = 0
        for session in list(self._subscribers.values()):
            if key_expr_matches(session.key_expr, sample.key):
                session.queue.put_nowait(sample)
                delivered += 1

        kind = sample.kind.value if sample.kind else "unknown kind"
        logger.debug(f"Published {kind} {sample.key} to {delivered} subscribers")
        return PublishResponse(success=True, delivered=delivered).to_json()

    async def Subscribe(
        self,
        request_bytes: bytes,
        context: grpc.aio.ServicerContext
    ) -> AsyncIterator[bytes]:
        """
        Handle Subscribe RPC (server streaming).
        Streams every matching publication until the subscriber disconnects.

        Args:
            request_bytes: Serialized SubscribeRequest
            context: gRPC context

        Yields:
            Serialized Sample messages
        """
        request = SubscribeRequest.from_json(request_bytes)
        session = _SubscriberSession(subscriber_id=str(uuid.uuid4()), key_expr=request.key_expr)
        self._subscribers[session.subscriber_id] = session
        logger.info(f"Subscriber {session.subscriber_id} declared on {session.key_expr}")

        try:
            while True:
                sample = await session.queue.get()
                yield sample.to_json()
        finally:
            self._subscribers.pop(session.subscriber_id, None)
            logger.info(f"Subscriber {session.subscriber_id} left")

    async def Query(
        self,
        request_bytes: bytes,
        context: grpc.aio.ServicerContext
    ) -> AsyncIterator[bytes]:
        """
        Handle Query RPC (server streaming).
        Forwards the selector to matching queryables and streams back their replies.

        Args:
            request_bytes: Serialized QueryRequest
            context: gRPC context

        Yields:
            Serialized Sample replies
        """
        request = QueryRequest.from_json(request_bytes)
        query_id = str(uuid.uuid4())

        responders = [
            session for session in self._queryables.values()
            if key_expr_matches(session.key_expr, request.selector)
        ]
        if not responders:
            logger.debug(f"Query {request.selector} has no responders")
            return

        pending = _PendingQuery(
            selector=request.selector,
            remaining={session.queryable_id for session in responders}
        )
        self._pending[query_id] = pending
        for session in responders:
            session.outstanding.add(query_id)
            session.outbox.put_nowait(QueryRequest(selector=request.selector, query_id=query_id))

        timeout = request.timeout if request.timeout is not None else self.query_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            while pending.remaining:
                remaining_time = deadline - loop.time()
                if remaining_time <= 0:
                    logger.warning(
                        f"Query {request.selector} timed out with {len(pending.remaining)} responders pending"
                    )
                    break
                try:
                    queryable_id, sample = await asyncio.wait_for(pending.replies.get(), remaining_time)
                except asyncio.TimeoutError:
                    continue
                if sample is None:
                    pending.remaining.discard(queryable_id)
                else:
                    yield sample.to_json()

            while not pending.replies.empty():
                _, sample = pending.replies.get_nowait()
                if sample is not None:
                    yield sample.to_json()
        finally:
            self._pending.pop(query_id, None)
            for session in responders:
                session.outstanding.discard(query_id)

    async def Serve(
        self,
        request_iterator: AsyncIterator[bytes],
        context: grpc.aio.ServicerContext
    ) -> AsyncIterator[bytes]:
        """
        Handle Serve RPC (bidirectional streaming).
        The first inbound message declares the key expression; queries are
        then pushed out and replies read back until the queryable disconnects.

        Args:
            request_iterator: Stream of ServeMessage messages (serialized)
            context: gRPC context

        Yields:
            Serialized QueryRequest messages
        """
        iterator = request_iterator.__aiter__()
        try:
            declaration = ServeMessage.from_json(await iterator.__anext__())
        except StopAsyncIteration:
            return

        if not declaration.key_expr:
            await context.abort(grpc.StatusCode.INVALID_ARGUMENT, "Serve stream must start with a key expression")
            return

        session = _QueryableSession(queryable_id=str(uuid.uuid4()), key_expr=declaration.key_expr)
        self._queryables[session.queryable_id] = session
        logger.info(f"Queryable {session.queryable_id} declared on {session.key_expr}")

        reader = asyncio.create_task(self._read_replies(session, iterator))
        try:
            while True:
                next_query = asyncio.ensure_future(session.outbox.get())
                done, _ = await asyncio.wait({next_query, reader}, return_when=asyncio.FIRST_COMPLETED)
                if next_query in done:
                    yield next_query.result().to_json()
                    continue
                next_query.cancel()
                break
        finally:
            if reader.done() and not reader.cancelled() and reader.exception() is not None:
                logger.error(f"Queryable {session.queryable_id} stream failed: {reader.exception()}")
            reader.cancel()
            self._queryables.pop(session.queryable_id, None)
            for query_id in list(session.outstanding):
                self._finish(query_id, session.queryable_id)
            logger.info(f"Queryable {session.queryable_id} left")

    async def _read_replies(self, session: _QueryableSession, iterator: AsyncIterator[bytes]) -> None:
        """Route replies and completion markers from a queryable to the waiting queries."""
        async for raw in iterator:
            message = ServeMessage.from_json(raw)
            pending = self._pending.get(message.query_id)
            if pending is None:
                logger.debug(f"Dropping reply for unknown or expired query {message.query_id}")
                continue
            if message.sample is not None:
                pending.replies.put_nowait((session.queryable_id, message.sample))
            if message.done:
                session.outstanding.discard(message.query_id)
                self._finish(message.query_id, session.queryable_id)

    def _finish(self, query_id: str, queryable_id: str) -> None:
        pending = self._pending.get(query_id)
        if pending is not None:
            pending.replies.put_nowait((queryable_id, None))


def create_server(query_timeout: float = QUERY_TIMEOUT_SECONDS) -> Tuple[aio.Server, BrokerServicer]:
    """
    Create and configure gRPC server.

    Args:
        query_timeout: Default seconds a query waits for responders

    Returns:
        Configured gRPC server and its servicer
    """
    server = aio.server(options=[
        ('grpc.max_send_message_length', GRPC_MAX_MESSAGE_BYTES),
        ('grpc.max_receive_message_length', GRPC_MAX_MESSAGE_BYTES),
    ])
    servicer = BrokerServicer(query_timeout=query_timeout)

    server.add_generic_rpc_handlers((
        grpc.method_handlers_generic_handler(
            BROKER_SERVICE_NAME,
            {
                'Publish': grpc.unary_unary_rpc_method_handler(
                    servicer.Publish,
                    request_deserializer=lambda x: x,
                    response_serializer=lambda x: x,
                ),
                'Subscribe': grpc.unary_stream_rpc_method_handler(
                    servicer.Subscribe,
                    request_deserializer=lambda x: x,
                    response_serializer=lambda x: x,
                ),
                'Query': grpc.unary_stream_rpc_method_handler(
                    servicer.Query,
                    request_deserializer=lambda x: x,
                    response_serializer=lambda x: x,
                ),
                'Serve': grpc.stream_stream_rpc_method_handler(
                    servicer.Serve,
                    request_deserializer=lambda x: x,
                    response_serializer=lambda x: x,
                ),
            }
        ),
    ))

    return server, servicer
