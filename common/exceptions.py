"""Custom exception classes shared by client and server."""


class CDNException(Exception):
    """
    Base exception class for all content distribution errors.
    """
    pass


class InvalidPathError(CDNException):
    """
    Raised when a source or destination path has no usable file name.
    """
    pass


class StorageIOError(CDNException):
    """
    Raised when a filesystem open/seek/read/write/stat operation fails.
    """
    pass


class MalformedKeyError(CDNException):
    """
    Raised when a key does not carry the expected prefix or shape.
    """
    pass


class MalformedMetadataError(CDNException):
    """
    Raised when a metadata payload cannot be deserialized or is wrongly tagged.
    """
    pass


class NotFoundError(CDNException):
    """
    Raised when a query gets no reply or a disk artifact is missing.
    """
    pass


class AmbiguousResultError(CDNException):
    """
    Raised when a query that must be singular gets more than one reply.
    """
    pass


class ChunkOutOfRangeError(CDNException):
    """
    Raised when a chunk offset lies beyond the end of a file.
    """
    pass


class ChecksumMismatchError(CDNException):
    """
    Raised when a reassembled file does not match its published checksum.
    """
    pass


class TransportError(CDNException):
    """
    Raised when the key/value transport is unreachable or fails a call.
    """
    pass


class InvalidChunkSizeError(CDNException, ValueError):
    """
    Raised when a chunk size is not positive or a chunk would not fit in one transport message.
    """
    pass
