class StorageDriverError(Exception):
    """Base class for errors raised by the storage driver."""


class PathNotFoundError(StorageDriverError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Path not found: {path}")


class InvalidPathError(StorageDriverError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Invalid path: {path!r}")


class InvalidOffsetError(StorageDriverError):
    def __init__(self, path, offset):
        self.path = path
        self.offset = offset
        super().__init__(f"Invalid offset {offset} for path: {path}")


class UnsupportedMethodError(StorageDriverError):
    def __init__(self, method):
        self.method = method
        super().__init__(f"Unsupported method for signed URL: {method!r}")


class InvalidParameterError(StorageDriverError, ValueError):
    """Raised when driver construction parameters fail validation."""


class AlreadyTerminalError(StorageDriverError):
    """Raised when a writer is used after it was closed, committed or cancelled."""

    def __init__(self, state):
        self.state = state
        super().__init__(f"already {state}")
