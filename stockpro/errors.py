"""Domain errors raised by the services and rendered by the API.

Every error carries a machine-readable ``code`` and the HTTP status the API
answers with. They subclass ``ValueError``/``PermissionError`` so callers that
only care about "bad input" vs "not allowed" can keep catching the builtins.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class StockProError(Exception):
    code = 'ERROR'
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {'error': self.code, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(StockProError, ValueError):
    code = 'VALIDATION_ERROR'
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(StockProError, ValueError):
    code = 'NOT_FOUND'
    http_status = status.HTTP_404_NOT_FOUND


class ConflictError(StockProError, ValueError):
    code = 'CONFLICT'
    http_status = status.HTTP_409_CONFLICT


class InvalidStateError(StockProError, ValueError):
    code = 'INVALID_STATE'
    http_status = status.HTTP_400_BAD_REQUEST


class UnsupportedOperationError(StockProError, ValueError):
    code = 'UNSUPPORTED_OPERATION'
    http_status = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(StockProError, PermissionError):
    code = 'UNAUTHORIZED'
    http_status = status.HTTP_403_FORBIDDEN


class AuthenticationError(StockProError, PermissionError):
    code = 'UNAUTHENTICATED'
    http_status = status.HTTP_401_UNAUTHORIZED


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StockProError)
    async def stockpro_error_handler(request: Request, exc: StockProError) -> JSONResponse:
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
