class ZipShareError(Exception):
    """Base class for every failure raised by the zipshare clients."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendError(ZipShareError):
    """Non-success response from the backend."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class CreateError(BackendError):
    pass


class CompleteError(BackendError):
    pass


class ChunkUploadError(ZipShareError):
    def __init__(self, message: str, part_number: int, attempts: int):
        super().__init__(message)
        self.part_number = part_number
        self.attempts = attempts


class CancellationError(ZipShareError):
    def __init__(self, message: str = "Upload aborted"):
        super().__init__(message)


class NotFoundError(ZipShareError):
    pass


class ValidationError(ZipShareError):
    pass


class ToolError(Exception):
    """Failure reported back to an agent, carrying a JSON-RPC error code."""

    METHOD_NOT_FOUND = -32601
    INTERNAL_ERROR = -32603

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message
