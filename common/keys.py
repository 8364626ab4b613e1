"""Key naming for chunk data and metadata sharing one flat key space.

A resource published under root ``/cdn`` is laid out as::

    /cdn/files/<resource_name>            metadata record (JSON)
    /cdn/files/<resource_name>/<index>    raw chunk bytes

The resource name is opaque and may itself contain ``/``. A key is
classified by its last segment: all ASCII digits means a chunk index,
anything else means the whole remainder names the resource. A resource
whose final segment is numeric (``videos/2021``) is therefore
indistinguishable from chunk 2021 of ``videos``; callers must avoid such
names.
"""

import re
from dataclasses import dataclass
from typing import Union

from common.constants import DEFAULT_ROOT, FILES_KEY, KEY_SEPARATOR
from common.exceptions import MalformedKeyError

_CHUNK_INDEX_RE = re.compile(r'[0-9]+')
_WILDCARD_SUFFIX = '/**'


@dataclass(frozen=True)
class ChunkRef:
    """Key addresses chunk ``index`` of ``resource_name``."""
    resource_name: str
    index: int


@dataclass(frozen=True)
class MetadataRef:
    """Key addresses the metadata record of ``resource_name``."""
    resource_name: str


KeyRef = Union[ChunkRef, MetadataRef]


def parse_chunk_index(segment: str) -> int:
    """
    Parse a key segment as a non-negative chunk index.

    Raises:
        ValueError: If the segment is not made of ASCII digits only
    """
    if not _CHUNK_INDEX_RE.fullmatch(segment):
        raise ValueError(f"Not a chunk index: {segment!r}")
    return int(segment)


def _check_resource_name(resource_name: str) -> None:
    if not resource_name:
        raise MalformedKeyError("Resource name must not be empty")


def classify(remainder: str) -> KeyRef:
    """
    Classify a prefix-stripped key as a chunk or a metadata reference.

    Args:
        remainder: Key with ``<root>/files/`` already removed

    Returns:
        ChunkRef when the final segment is numeric and a resource name
        precedes it, MetadataRef otherwise

    Raises:
        MalformedKeyError: If the remainder names no resource
    """
    if not remainder:
        raise MalformedKeyError("Key does not name a resource")

    resource_name, sep, last = remainder.rpartition(KEY_SEPARATOR)
    if sep and resource_name:
        try:
            return ChunkRef(resource_name=resource_name, index=parse_chunk_index(last))
        except ValueError:
            pass
    return MetadataRef(resource_name=remainder)


@dataclass(frozen=True)
class KeySpace:
    """
    Immutable key layout rooted at ``root``.

    Built once at client/server startup and handed to every component
    that builds or parses keys.
    """
    root: str = DEFAULT_ROOT

    def __post_init__(self):
        if not self.root or self.root.endswith(KEY_SEPARATOR):
            raise MalformedKeyError(f"Invalid key space root {self.root!r}")
        if '*' in self.root:
            raise MalformedKeyError(f"Key space root must not contain wildcards: {self.root!r}")

    @classmethod
    def from_resource_space(cls, resource_space: str) -> 'KeySpace':
        """
        Derive the key space from a server resource pattern such as ``/cdn/**``.
        """
        root = resource_space.split(_WILDCARD_SUFFIX)[0]
        return cls(root=root)

    @property
    def prefix(self) -> str:
        return f"{self.root}{KEY_SEPARATOR}{FILES_KEY}{KEY_SEPARATOR}"

    @property
    def resource_space(self) -> str:
        return f"{self.root}{_WILDCARD_SUFFIX}"

    def metadata_key(self, resource_name: str) -> str:
        _check_resource_name(resource_name)
        return f"{self.prefix}{resource_name}"

    def chunk_key(self, resource_name: str, index: int) -> str:
        _check_resource_name(resource_name)
        if index < 0:
            raise MalformedKeyError(f"Chunk index must be non-negative, got {index}")
        return f"{self.prefix}{resource_name}{KEY_SEPARATOR}{index}"

    def strip(self, key: str) -> str:
        """
        Remove the ``<root>/files/`` prefix from a key.

        Raises:
            MalformedKeyError: If the key lies outside this key space
        """
        if not key.startswith(self.prefix):
            raise MalformedKeyError(f"Key {key!r} is outside {self.prefix!r}")
        return key[len(self.prefix):]

    def classify(self, key: str) -> KeyRef:
        """Strip the prefix from a full key and classify the remainder."""
        return classify(self.strip(key))
