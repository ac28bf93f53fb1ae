"""Custom Exceptions for the LyricSync application."""

from enum import Enum


class LyricSyncError(Exception):
    """Base class for exceptions in this module."""

    kind: str = "unknown"

    def __init__(self, message: str = "", kind=None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind.value if isinstance(kind, Enum) else str(kind)


class ConfigurationError(LyricSyncError):
    """Exception raised for errors in configuration loading."""
    kind = "configuration"


class FileSystemError(LyricSyncError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    kind = "filesystem"


class EngineBusyError(LyricSyncError):
    """Raised when a second transcription or export is started on the same instance."""
    kind = "busy"


class InitializationKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK_FAILURE = "network-failure"
    DEVICE_UNSUPPORTED = "device-unsupported"


class TranscriptionKind(str, Enum):
    TIMEOUT = "timeout"
    FEATURE_UNSUPPORTED = "feature-unsupported"
    UNKNOWN = "unknown"


class RenderKind(str, Enum):
    ENCODER_INIT_FAILED = "encoder-init-failed"
    ENCODE_FAILED = "encode-failed"


class ValidationKind(str, Enum):
    EMPTY_EXPORT = "empty-export"
    MALFORMED_TIMESTAMP = "malformed-timestamp"


class InitializationError(LyricSyncError):
    """Exception raised when the recognizer or encoder cannot be made ready."""

    def __init__(self, message: str, kind: InitializationKind = InitializationKind.DEVICE_UNSUPPORTED):
        super().__init__(message, kind)


class TranscriptionError(LyricSyncError):
    """Exception raised for errors during transcription or segmentation."""

    def __init__(self, message: str, kind: TranscriptionKind = TranscriptionKind.UNKNOWN):
        super().__init__(message, kind)


class RenderError(LyricSyncError):
    """Exception raised for errors during video rendering."""

    def __init__(self, message: str, kind: RenderKind = RenderKind.ENCODE_FAILED):
        super().__init__(message, kind)


class ValidationError(LyricSyncError):
    """Exception raised for invalid lyric data (bad timestamps, nothing to export)."""

    def __init__(self, message: str, kind: ValidationKind = ValidationKind.MALFORMED_TIMESTAMP):
        super().__init__(message, kind)
