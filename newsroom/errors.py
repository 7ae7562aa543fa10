"""
Error kinds raised by the article engine and its collaborators.

Every kind carries a stable ``code`` and the HTTP status the web layer
maps it to.  All kinds are direct subclasses of ``NewsroomError``.
"""


class NewsroomError(Exception):
    code = "INTERNAL"
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class AuthenticationRequired(NewsroomError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401
    default_message = "authentication required"


class Forbidden(NewsroomError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "not authorized"


class NotFound(NewsroomError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "not found"


class InvalidInput(NewsroomError):
    code = "INVALID_INPUT"
    status_code = 400
    default_message = "invalid input"


class Conflict(NewsroomError):
    code = "CONFLICT"
    status_code = 409
    default_message = "conflicting write"


class Internal(NewsroomError):
    pass
