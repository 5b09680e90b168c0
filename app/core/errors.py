from typing import Any
from fastapi import HTTPException


class ServiceError(HTTPException):
    """
    HTTPException carrying a machine-readable error code

    detail is always {"code": ..., "message": ..., **context} so clients can
    tell which field or id to fix.
    """

    def __init__(self, status_code: int, code: str, message: str, **context: Any):
        detail = {"code": code, "message": message}
        detail.update(context)
        super().__init__(status_code=status_code, detail=detail)
        self.code = code
        self.message = message


def unauthorized(message: str = "Authentication required") -> ServiceError:
    return ServiceError(401, "unauthorized", message)


def forbidden(message: str = "Access denied", code: str = "forbidden", **context) -> ServiceError:
    return ServiceError(403, code, message, **context)


def access_denied(message: str, **context) -> ServiceError:
    return ServiceError(403, "access_denied", message, **context)


def not_found(message: str, **context) -> ServiceError:
    return ServiceError(404, "not_found", message, **context)


def validation_error(message: str, code: str = "validation_error", **context) -> ServiceError:
    return ServiceError(422, code, message, **context)


def bad_request(code: str, message: str, **context) -> ServiceError:
    return ServiceError(400, code, message, **context)


def conflict(code: str, message: str, **context) -> ServiceError:
    return ServiceError(409, code, message, **context)
