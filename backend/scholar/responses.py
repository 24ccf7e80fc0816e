from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .cors import CORS_HEADERS
from .errors import AppError, ErrorCode, ERROR_MESSAGES, get_http_status


logger = logging.getLogger(__name__)


def _timestamp() -> str:
	return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def success_response(
	data: Any,
	*,
	status: int = 200,
	cors_headers: Mapping[str, str] = CORS_HEADERS,
	request_id: Optional[str] = None,
) -> JSONResponse:
	meta: dict[str, Any] = {"timestamp": _timestamp()}
	if request_id:
		meta["requestId"] = request_id
	body = {"success": True, "data": jsonable_encoder(data), "meta": meta}
	return JSONResponse(content=body, status_code=status, headers=dict(cors_headers))


def error_response(
	code: ErrorCode,
	message: Optional[str] = None,
	*,
	details: Any = None,
	status: Optional[int] = None,
	cors_headers: Mapping[str, str] = CORS_HEADERS,
	headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
	code = ErrorCode(code)
	error: dict[str, Any] = {"code": code.value, "message": message or ERROR_MESSAGES[code]}
	if details is not None:
		error["details"] = jsonable_encoder(details)
	all_headers = dict(cors_headers)
	if headers:
		all_headers.update(headers)
	return JSONResponse(
		content={"success": False, "error": error},
		status_code=status or get_http_status(code),
		headers=all_headers,
	)


def app_error_response(err: AppError, cors_headers: Mapping[str, str] = CORS_HEADERS) -> JSONResponse:
	return error_response(err.code, err.message, details=err.details, cors_headers=cors_headers)


def unauthorized_response(message: Optional[str] = None, cors_headers: Mapping[str, str] = CORS_HEADERS) -> JSONResponse:
	return error_response(ErrorCode.UNAUTHORIZED, message, cors_headers=cors_headers)


def validation_error_response(
	message: str,
	details: Any = None,
	cors_headers: Mapping[str, str] = CORS_HEADERS,
) -> JSONResponse:
	return error_response(ErrorCode.VALIDATION_ERROR, message, details=details, cors_headers=cors_headers)


def not_found_response(resource: str = "Resource", cors_headers: Mapping[str, str] = CORS_HEADERS) -> JSONResponse:
	return error_response(ErrorCode.NOT_FOUND, f"{resource} not found", cors_headers=cors_headers)


def internal_error_response(error: BaseException, cors_headers: Mapping[str, str] = CORS_HEADERS) -> JSONResponse:
	"""Log the real failure, answer with the generic internal message."""
	logger.error("Internal error: %r", error, exc_info=error)
	return error_response(ErrorCode.INTERNAL_ERROR, cors_headers=cors_headers)


def rate_limit_response(retry_after: Optional[int] = None, cors_headers: Mapping[str, str] = CORS_HEADERS) -> JSONResponse:
	headers = {"Retry-After": str(retry_after)} if retry_after else None
	return error_response(ErrorCode.RATE_LIMITED, cors_headers=cors_headers, headers=headers)


def payment_required_response(message: Optional[str] = None, cors_headers: Mapping[str, str] = CORS_HEADERS) -> JSONResponse:
	return error_response(ErrorCode.CREDITS_EXHAUSTED, message, cors_headers=cors_headers)
