"""
Episode Worker Error Taxonomy

Every failure the worker can report is a WorkerError subclass. Gateways wrap
library exceptions (redis, botocore, OSError, pydantic) into these types so the
dispatcher and the episode job only ever reason about one hierarchy.
"""

from typing import Optional


class WorkerError(Exception):
    """Base class for all episode worker errors."""

    pass


class QueueUnavailable(WorkerError):
    """Raised when the Redis connection rejects a queue read or write."""

    pass


class PayloadError(WorkerError):
    """Raised when a job payload cannot be encoded or decoded."""

    pass


class DeserializeError(PayloadError):
    """Raised when an envelope or serialized command cannot be decoded."""

    pass


class UnknownCommand(DeserializeError):
    """Raised when a serialized object carries a class tag missing from the scope."""

    def __init__(self, tag: str):
        super().__init__(f"Unknown command class: {tag}")
        self.tag = tag


class SerializeError(PayloadError):
    """Raised when a command object holds a value PHP serialization cannot express."""

    pass


class TranscodeError(WorkerError):
    """Base class for transcode pipeline failures."""

    pass


class ProbeError(TranscodeError):
    """Raised when ffprobe fails or prints something unparsable."""

    pass


class EncodeError(TranscodeError):
    """Raised when the encoder exits with a non-zero code."""

    def __init__(self, message: str, exit_code: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


class EncodeTimeout(EncodeError):
    """Raised when the encoder exceeds the configured timeout."""

    pass


class SpawnError(TranscodeError):
    """Raised when an external binary cannot be started."""

    pass


class StorageError(WorkerError):
    """Raised when an object storage call fails."""

    pass


class FilesystemError(WorkerError):
    """Raised when a local filesystem operation fails."""

    pass
