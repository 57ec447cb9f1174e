"""Exceptions raised by the transfer module.

Each error carries the HTTP status the router should answer with.
"""


def format_size(num_bytes: int) -> str:
    """Render a byte count as whole MB, or as bytes below 1MB."""
    mb = 1024 * 1024
    if num_bytes >= mb and num_bytes % mb == 0:
        return f"{num_bytes // mb}MB"
    return f"{num_bytes} bytes"


class RelayError(Exception):
    """Base exception for transfer errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ClientInputError(RelayError):
    """Raised when the upload request itself is unusable."""
    def __init__(self, message: str = "no file", status_code: int = 400):
        super().__init__(message, status_code=status_code)


class PayloadTooLargeError(ClientInputError):
    """Raised when an upload exceeds the per-file size ceiling."""
    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(
            f"File size exceeds limit of {format_size(limit_bytes)}",
            status_code=413,
        )


class NotLiveError(RelayError):
    """Raised when an id was delivered, expired, cleared or never existed."""
    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__("Gone", status_code=410)


class StorageIOError(RelayError):
    """Raised when an upload cannot be written to disk."""
    def __init__(self, message: str):
        super().__init__(f"Storage failure: {message}", status_code=500)
