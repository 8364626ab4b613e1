"""Shared data type definitions (FileMetadata, chunk count rule)."""

from typing import Union

from pydantic import BaseModel, ConfigDict, NonNegativeInt, PositiveInt, ValidationError

from common.exceptions import MalformedMetadataError


def chunk_count(size: int, chunk_size: int) -> int:
    """
    Number of chunk slots published for a file of ``size`` bytes.

    Always ``size // chunk_size + 1``: an exact multiple of the chunk size
    still gets one trailing empty chunk, and an empty file gets one empty
    chunk. Consumers depend on this count, so it is kept as is.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return size // chunk_size + 1


class FileMetadata(BaseModel):
    """
    Descriptor published once per uploaded resource.

    Immutable once built; a re-upload under the same resource name
    replaces the stored record.
    """
    model_config = ConfigDict(frozen=True)

    filename: str
    checksum: str
    chunk_size: PositiveInt
    chunks: NonNegativeInt
    resource_name: str
    size: NonNegativeInt

    def serialize(self) -> str:
        """Serialize to a JSON string."""
        return self.model_dump_json()

    @classmethod
    def deserialize(cls, serialized: Union[str, bytes]) -> 'FileMetadata':
        """
        Deserialize from JSON text or UTF-8 bytes.

        Raises:
            MalformedMetadataError: If the payload is not a valid record
        """
        if isinstance(serialized, bytes):
            try:
                serialized = serialized.decode('utf-8')
            except UnicodeDecodeError as e:
                raise MalformedMetadataError(f"Metadata is not valid UTF-8: {e}") from e
        try:
            return cls.model_validate_json(serialized)
        except ValidationError as e:
            raise MalformedMetadataError(f"Error deserializing metadata {serialized!r}: {e}") from e
