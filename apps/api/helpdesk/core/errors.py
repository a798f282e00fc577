"""Error taxonomy shared by the stores, the policy layer and the share service.

Messages are deliberately generic: callers learn *that* something failed,
never *why* a ticket is out of reach (no tenant or existence hints).
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class HelpdeskError(Exception):
    status_code = 400
    detail = "Bad request"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class InvalidInput(HelpdeskError):
    status_code = 422
    detail = "Invalid input"


class AccessDenied(HelpdeskError):
    status_code = 403
    detail = "Forbidden"


class NotFound(HelpdeskError):
    status_code = 404
    detail = "Not found"


class ShareError(HelpdeskError):
    status_code = 404
    detail = "Not found"


class ShareNotFound(ShareError, NotFound):
    pass


class Expired(ShareError):
    # Rendered exactly like an unknown token.
    status_code = 404
    detail = "Not found"


class PasswordRequired(ShareError):
    status_code = 401
    detail = "Password required"


class PasswordMismatch(ShareError):
    status_code = 401
    detail = "Invalid password"


class DispatchError(HelpdeskError):
    status_code = 502
    detail = "Notification delivery failed"


async def helpdesk_error_handler(request: Request, exc: HelpdeskError) -> JSONResponse:
    # Public rendering uses the class default, not the internal message.
    return JSONResponse(status_code=exc.status_code, content={"detail": type(exc).detail})


async def invalid_input_handler(request: Request, exc: InvalidInput) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HelpdeskError, helpdesk_error_handler)
    app.add_exception_handler(InvalidInput, invalid_input_handler)
