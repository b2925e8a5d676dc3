from typing import Optional


class AppError(Exception):
    """Base for errors that map onto an HTTP response."""

    status_code: int = 500
    detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None) -> None:
        if detail is not None:
            self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


# --- authentication -------------------------------------------------------

class AuthError(AppError):
    status_code = 401
    detail = "Not authenticated"


class MissingCredential(AuthError):
    status_code = 401
    detail = "Access token required"


class InvalidCredential(AuthError):
    status_code = 403
    detail = "Invalid token"


class ExpiredCredential(AuthError):
    status_code = 403
    detail = "Token has expired"


class InvalidLogin(AuthError):
    status_code = 401
    detail = "Invalid credentials"


# --- authorization --------------------------------------------------------

class AccessDenied(AppError):
    status_code = 403
    detail = "Access denied"


# --- validation -----------------------------------------------------------

class ValidationFailed(AppError):
    status_code = 400
    detail = "Invalid request"


class EmptyContent(ValidationFailed):
    detail = "Message content is required"


class SelfConversation(ValidationFailed):
    detail = "Cannot chat with yourself"


class Conflict(ValidationFailed):
    detail = "Resource already exists"


# --- lookup ---------------------------------------------------------------

class NotFound(AppError):
    status_code = 404
    detail = "Not found"


# --- infrastructure -------------------------------------------------------

class InfrastructureError(AppError):
    status_code = 500
    detail = "Storage failure"


class StoreConflict(InfrastructureError):
    status_code = 503
    detail = "Too many concurrent writes, try again"
