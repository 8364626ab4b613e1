"""Transport implementation backed by the broker gRPC service."""

import asyncio
import logging
from typing import List, Optional, Set

import grpc

from common.constants import (
    BROKER_SERVICE_NAME,
    GRPC_ENVELOPE_RESERVE_BYTES,
    GRPC_KEEPALIVE_TIME_MS,
    GRPC_KEEPALIVE_TIMEOUT_MS,
    GRPC_MAX_MESSAGE_BYTES,
)
from common.exceptions import TransportError
from common.protocol import (
    ChangeKind,
    Encoding,
    PublishResponse,
    QueryRequest,
    Sample,
    ServeMessage,
    SubscribeRequest,
    max_sample_payload,
)
from common.transport import Query, Queryable, Subscription, Transport, validate_key

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


def _method(name: str) -> str:
    return f'/{BROKER_SERVICE_NAME}/{name}'


def _transport_error(operation: str, error: grpc.RpcError) -> TransportError:
    return TransportError(f"Broker {operation} failed [{error.code().name}]: {error.details()}")


class _RemoteQuery(Query):
    """Query received over the Serve stream; replies go back on the same stream."""

    def __init__(self, selector: str, query_id: str, outbox: asyncio.Queue):
        super().__init__(selector)
        self.query_id = query_id
        self._outbox = outbox
        self._finished = False

    async def reply(self, sample: Sample) -> None:
        if self._finished:
            raise TransportError(f"Query {self.selector!r} already finished")
        self._outbox.put_nowait(ServeMessage(query_id=self.query_id, sample=sample))

    async def finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._outbox.put_nowait(ServeMessage(query_id=self.query_id, done=True))


class GrpcTransport(Transport):
    """
    gRPC client for the broker key space.
    Handles connection management and maps RPC failures to TransportError.
    """

    max_payload_bytes = max_sample_payload(GRPC_MAX_MESSAGE_BYTES, GRPC_ENVELOPE_RESERVE_BYTES)

    def __init__(self, target: str):
        """
        Initialize client with lazy connection.

        Args:
            target: Broker address as host:port
        """
        self._target = target
        self._channel = None
        self._tasks: Set[asyncio.Task] = set()
        self._streams: List = []

    def _ensure_channel(self):
        """Ensure gRPC channel is established."""
        if self._channel is None:
            options = [
                ('grpc.keepalive_time_ms', GRPC_KEEPALIVE_TIME_MS),
                ('grpc.keepalive_timeout_ms', GRPC_KEEPALIVE_TIMEOUT_MS),
                ('grpc.keepalive_permit_without_calls', 1),
                ('grpc.max_send_message_length', GRPC_MAX_MESSAGE_BYTES),
                ('grpc.max_receive_message_length', GRPC_MAX_MESSAGE_BYTES),
            ]
            self._channel = grpc.aio.insecure_channel(self._target, options=options)
            logger.info(f"Established gRPC channel to {self._target}")
        return self._channel

    async def publish(
        self,
        key: str,
        payload: bytes,
        encoding: Encoding = Encoding.OCTET_STREAM,
        kind: ChangeKind = ChangeKind.PUT
    ) -> int:
        validate_key(key)
        if len(payload) > self.max_payload_bytes:
            raise TransportError(
                f"Payload of {len(payload)} bytes at {key} exceeds the broker limit of {self.max_payload_bytes} bytes"
            )
        channel = self._ensure_channel()
        sample = Sample(key=key, payload=payload, encoding=encoding, kind=kind)

        multi_callable = channel.unary_unary(
            _method('Publish'),
            request_serializer=lambda x: x,
            response_deserializer=lambda x: x,
        )
        try:
            response_bytes = await multi_callable(sample.to_json())
        except grpc.RpcError as e:
            raise _transport_error(f"publish of {key}", e) from e

        response = PublishResponse.from_json(response_bytes)
        if not response.success:
            raise TransportError(f"Broker rejected publication of {key}: {response.error_message}")
        logger.debug(f"Published {kind.value} {key} ({len(payload)} bytes) to {response.delivered} subscribers")
        return response.delivered

    async def subscribe(self, key_expr: str) -> Subscription:
        channel = self._ensure_channel()
        call = channel.unary_stream(
            _method('Subscribe'),
            request_serializer=lambda x: x,
            response_deserializer=lambda x: x,
        )(SubscribeRequest(key_expr=key_expr).to_json())

        subscription = Subscription(key_expr, on_close=lambda _: self._release(call))

        async def pump():
            try:
                async for raw in call:
                    subscription.deliver(Sample.from_json(raw))
            except grpc.RpcError as e:
                if e.code() != grpc.StatusCode.CANCELLED:
                    logger.error(f"Subscription on {key_expr} failed: {e.details()}")
            finally:
                await subscription.close()

        self._spawn(pump())
        self._streams.append(subscription)
        return subscription

    async def query(self, selector: str, timeout: Optional[float] = None) -> List[Sample]:
        channel = self._ensure_channel()
        call = channel.unary_stream(
            _method('Query'),
            request_serializer=lambda x: x,
            response_deserializer=lambda x: x,
        )(QueryRequest(selector=selector, timeout=timeout).to_json())

        replies = []
        try:
            async for raw in call:
                replies.append(Sample.from_json(raw))
        except grpc.RpcError as e:
            raise _transport_error(f"query of {selector}", e) from e
        return replies

    async def register_queryable(self, key_expr: str) -> Queryable:
        channel = self._ensure_channel()
        outbox: asyncio.Queue = asyncio.Queue()
        outbox.put_nowait(ServeMessage(key_expr=key_expr))

        async def request_generator():
            while True:
                message = await outbox.get()
                if message is _END_OF_STREAM:
                    return
                yield message.to_json()

        call = channel.stream_stream(
            _method('Serve'),
            request_serializer=lambda x: x,
            response_deserializer=lambda x: x,
        )(request_generator())

        def on_close(_):
            outbox.put_nowait(_END_OF_STREAM)
            self._release(call)

        queryable = Queryable(key_expr, on_close=on_close)

        async def pump():
            try:
                async for raw in call:
                    request = QueryRequest.from_json(raw)
                    queryable.deliver(_RemoteQuery(request.selector, request.query_id, outbox))
            except grpc.RpcError as e:
                if e.code() != grpc.StatusCode.CANCELLED:
                    logger.error(f"Queryable on {key_expr} failed: {e.details()}")
            finally:
                await queryable.close()

        self._spawn(pump())
        self._streams.append(queryable)
        return queryable

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    def _release(call) -> None:
        if not call.done():
            call.cancel()

    async def close(self) -> None:
        """Close all streams and the gRPC channel."""
        for stream in self._streams:
            await stream.close()
        self._streams.clear()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._channel:
            await self._channel.close()
            self._channel = None
