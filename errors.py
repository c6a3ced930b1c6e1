"""
Error taxonomy for the publishing pipeline.

Every error carries the HTTP status and machine code used by the API
envelope, so routes can simply let them propagate.
"""
from typing import List, Optional


class PublishError(Exception):
    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_error(self) -> dict:
        return {"code": self.code, **self.details}


class NotFound(PublishError):
    status_code = 404
    code = "NOT_FOUND"

    @classmethod
    def resource(cls, kind: str, identifier) -> "NotFound":
        return cls(f"{kind} not found", {"resource": kind, "id": str(identifier)})


class Forbidden(PublishError):
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(PublishError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Conflict(PublishError):
    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, suggestions: Optional[List[str]] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.suggestions = list(suggestions or [])

    def to_error(self) -> dict:
        error = super().to_error()
        error["suggestions"] = self.suggestions
        return error


class PublishInProgress(Conflict):
    code = "PUBLISH_IN_PROGRESS"


class UpstreamError(PublishError):
    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, status: Optional[int] = None, body=None):
        details = {}
        if status is not None:
            details["providerStatus"] = status
        if body:
            details["providerError"] = body
        super().__init__(message, details)
        self.status = status
        self.body = body


class StorageError(PublishError):
    code = "STORAGE_ERROR"


class RenderError(PublishError):
    code = "RENDER_ERROR"
