from __future__ import annotations

"""Error taxonomy for the conversation gateway.

Everything raised before the first frame is written maps to an HTTP status.
Failures after that point travel as an ``error`` frame instead, since the
response headers are already committed.
"""


class ScoutError(Exception):
    status_code = 500
    public_message = "something went wrong. try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class Unauthorized(ScoutError):
    status_code = 401
    public_message = "unauthorized"


class InvalidInput(ScoutError):
    status_code = 400
    public_message = "invalid input"


class NotFound(ScoutError):
    status_code = 404
    public_message = "project not found"


class RateLimited(ScoutError):
    status_code = 429
    public_message = "too many requests. wait a moment and try again."

    def __init__(self, message: str | None = None, retry_after_seconds: int = 1) -> None:
        super().__init__(message)
        self.retry_after_seconds = max(int(retry_after_seconds), 1)


class UpstreamStreamError(ScoutError):
    status_code = 502
    public_message = "scout hit a snag mid-reply. try again."


class UploadFailed(ScoutError):
    """One attachment could not be stored. Never fails the turn it belongs to."""

    status_code = 502
    public_message = "upload failed. try again"
