"""Shared message definitions: transport samples, typed CDN messages and broker RPC payloads."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
import json
import base64

from common.exceptions import MalformedKeyError
from common.keys import KeySpace, MetadataRef
from common.types import FileMetadata


class Encoding(str, Enum):
    """Payload tag carried with every sample."""
    OCTET_STREAM = 'application/octet-stream'
    JSON = 'application/json'
    TEXT = 'text/plain'


class ChangeKind(str, Enum):
    """Kind of change a published sample represents."""
    PUT = 'put'
    PATCH = 'patch'
    DELETE = 'delete'


def _parse_enum(enum_cls, value: str):
    """Map an unknown wire value to None so receivers can drop it gracefully."""
    try:
        return enum_cls(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class Sample:
    """A keyed payload as published, delivered to subscribers or returned by a query."""
    key: str
    payload: bytes
    encoding: Optional[Encoding] = Encoding.OCTET_STREAM
    kind: Optional[ChangeKind] = ChangeKind.PUT

    def to_dict(self) -> dict:
        return {
            'key': self.key,
            'payload': base64.b64encode(self.payload).decode('ascii'),
            'encoding': self.encoding.value if self.encoding else None,
            'kind': self.kind.value if self.kind else None,
        }

    @classmethod
    def from_dict(cls, obj: dict) -> 'Sample':
        return cls(
            key=obj['key'],
            payload=base64.b64decode(obj.get('payload', '')),
            encoding=_parse_enum(Encoding, obj.get('encoding')),
            kind=_parse_enum(ChangeKind, obj.get('kind', ChangeKind.PUT.value)),
        )

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return json.dumps(self.to_dict()).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'Sample':
        """Deserialize from JSON bytes."""
        return cls.from_dict(json.loads(data))


@dataclass(frozen=True)
class ChunkMessage:
    """Chunk ``index`` of ``resource_name`` with its raw bytes."""
    resource_name: str
    index: int
    data: bytes


@dataclass(frozen=True)
class MetadataMessage:
    """Metadata record of a resource, with the raw serialized text as received."""
    resource_name: str
    record: FileMetadata
    raw: bytes


IncomingMessage = Union[ChunkMessage, MetadataMessage]


def max_sample_payload(message_limit: int, envelope_reserve: int) -> int:
    """
    Largest payload whose base64 form fits a message of ``message_limit`` bytes.

    ``envelope_reserve`` bytes are kept for the JSON fields and the key.
    """
    return (message_limit - envelope_reserve) // 4 * 3


class UnsupportedEncodingError(ValueError):
    """Raised when a sample carries a payload tag the CDN does not handle."""
    pass


def decode_sample(key_space: KeySpace, sample: Sample) -> IncomingMessage:
    """
    Decode an upsert sample into a typed CDN message.

    Binary payloads must sit at a chunk-shaped key. Structured payloads are
    metadata whatever the key shape; the resource name comes from the
    record body.

    Raises:
        MalformedKeyError: Key outside the key space, or binary payload at a metadata key
        MalformedMetadataError: Structured payload that is not a metadata record
        UnsupportedEncodingError: Any other payload tag
    """
    if sample.encoding == Encoding.OCTET_STREAM:
        ref = key_space.classify(sample.key)
        if isinstance(ref, MetadataRef):
            raise MalformedKeyError(
                f"Binary payload at metadata key {sample.key!r} for {ref.resource_name!r}"
            )
        return ChunkMessage(resource_name=ref.resource_name, index=ref.index, data=sample.payload)

    if sample.encoding == Encoding.JSON:
        key_space.strip(sample.key)
        record = FileMetadata.deserialize(sample.payload)
        return MetadataMessage(resource_name=record.resource_name, record=record, raw=sample.payload)

    raise UnsupportedEncodingError(f"Unsupported payload encoding {sample.encoding!r} at {sample.key!r}")


# Broker RPC payloads.


@dataclass
class PublishResponse:
    """Response message for Publish RPC."""
    success: bool
    delivered: int = 0
    error_message: Optional[str] = None

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return json.dumps({
            'success': self.success,
            'delivered': self.delivered,
            'error_message': self.error_message,
        }).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'PublishResponse':
        """Deserialize from JSON bytes."""
        obj = json.loads(data)
        return cls(
            success=obj['success'],
            delivered=obj.get('delivered', 0),
            error_message=obj.get('error_message'),
        )


@dataclass
class SubscribeRequest:
    """Request message for Subscribe RPC."""
    key_expr: str

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return json.dumps({'key_expr': self.key_expr}).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'SubscribeRequest':
        """Deserialize from JSON bytes."""
        return cls(key_expr=json.loads(data)['key_expr'])


@dataclass
class QueryRequest:
    """Request message for Query RPC, and the query forwarded to a queryable."""
    selector: str
    query_id: Optional[str] = None
    timeout: Optional[float] = None

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return json.dumps({
            'selector': self.selector,
            'query_id': self.query_id,
            'timeout': self.timeout,
        }).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'QueryRequest':
        """Deserialize from JSON bytes."""
        obj = json.loads(data)
        return cls(selector=obj['selector'], query_id=obj.get('query_id'), timeout=obj.get('timeout'))


@dataclass
class ServeMessage:
    """
    Message sent by a queryable on the Serve stream.

    The first message declares ``key_expr``; later ones carry either a
    reply ``sample`` for ``query_id`` or ``done=True`` to finish it.
    """
    key_expr: Optional[str] = None
    query_id: Optional[str] = None
    sample: Optional[Sample] = None
    done: bool = False

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        obj = {'done': self.done}
        if self.key_expr is not None:
            obj['key_expr'] = self.key_expr
        if self.query_id is not None:
            obj['query_id'] = self.query_id
        if self.sample is not None:
            obj['sample'] = self.sample.to_dict()
        return json.dumps(obj).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'ServeMessage':
        """Deserialize from JSON bytes."""
        obj = json.loads(data)
        sample = Sample.from_dict(obj['sample']) if 'sample' in obj else None
        return cls(
            key_expr=obj.get('key_expr'),
            query_id=obj.get('query_id'),
            sample=sample,
            done=obj.get('done', False),
        )
