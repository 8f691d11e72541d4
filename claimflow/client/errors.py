import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel


logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised for every non-2xx response from the ClaimFlow API."""

    def __init__(self, status: int, data: Any = None, message: Optional[str] = None):
        self.status = status
        self.data = data
        super().__init__(message or _detail_message(data) or f"Request failed with status {status}")

    @property
    def message(self) -> str:
        return str(self)


class AppError(BaseModel):
    message: str
    code: str = "UNKNOWN_ERROR"
    status: Optional[int] = None
    details: Any = None


def _detail_message(data: Any) -> Optional[str]:
    if isinstance(data, str):
        return data or None
    if not isinstance(data, dict):
        return None
    detail = data.get("detail", data)
    if isinstance(detail, str):
        return detail
    if isinstance(detail, dict):
        return detail.get("message") or detail.get("error")
    if isinstance(detail, list) and detail:
        # FastAPI 422 body: [{"loc": [...], "msg": "..."}]
        first = detail[0]
        if isinstance(first, dict):
            field = ".".join(str(p) for p in first.get("loc", [])[1:])
            return f"{field}: {first.get('msg')}" if field else first.get("msg")
    return data.get("message") or data.get("error")


def normalize_error(error: Any, context: Optional[str] = None) -> AppError:
    if isinstance(error, AppError):
        app_error = error
    elif isinstance(error, ApiError):
        detail = error.data.get("detail") if isinstance(error.data, dict) else error.data
        code = "AUTH_ERROR" if error.status in (401, 403) else "VALIDATION_ERROR" if error.status == 422 else "API_ERROR"
        app_error = AppError(message=error.message, code=code, status=error.status, details=detail)
    elif isinstance(error, httpx.TimeoutException):
        app_error = AppError(message="Request timed out. Please try again.", code="TIMEOUT_ERROR", details=str(error))
    elif isinstance(error, httpx.TransportError):
        app_error = AppError(
            message="Unable to connect to the server. Please check your connection.",
            code="NETWORK_ERROR",
            details=str(error),
        )
    elif isinstance(error, dict):
        app_error = AppError(
            message=_detail_message(error) or "API request failed",
            code=error.get("code") or "API_ERROR",
            status=error.get("status"),
            details=error,
        )
    elif isinstance(error, str):
        app_error = AppError(message=error, code="STRING_ERROR")
    elif isinstance(error, BaseException):
        app_error = AppError(message=str(error) or type(error).__name__, code=type(error).__name__)
    else:
        app_error = AppError(message="An unexpected error occurred")
    logger.debug("[%s] %s", context or "normalize_error", app_error.model_dump())
    return app_error
