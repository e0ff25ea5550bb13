from __future__ import annotations

import math
from typing import Dict, Optional


class PasteError(Exception):
    """
    Base for request-scoped failures.

    `public_message` is what the HTTP boundary sends back; `str(exc)` may carry
    more detail and is meant for logs only.
    """
    status_code: int = 500
    public_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)

    def headers(self) -> Dict[str, str]:
        return {}


class ValidationError(PasteError):
    status_code = 400
    public_message = "Invalid request"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message)
        if message:
            self.public_message = message


class UploadTooLargeError(ValidationError):
    status_code = 413
    public_message = "Upload too large"

    def __init__(self, limit: int) -> None:
        super().__init__(f"Upload exceeds {limit} bytes")
        self.limit = limit


class NotFoundError(PasteError):
    # Missing, malformed and expired locators all land here on purpose.
    status_code = 404
    public_message = "404 page not found"


class RateLimitedError(PasteError):
    status_code = 429
    public_message = "Rate limit exceeded"

    def __init__(self, retry_after: float = 0.0) -> None:
        super().__init__()
        self.retry_after = retry_after

    def headers(self) -> Dict[str, str]:
        if self.retry_after > 0:
            return {"Retry-After": str(max(1, math.ceil(self.retry_after)))}
        return {}


class StorageError(PasteError):
    status_code = 500
    public_message = "Storage error"
