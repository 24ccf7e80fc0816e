"""
Error taxonomy shared by every pipeline endpoint.

Each ``ErrorCode`` maps to exactly one HTTP status and one default message.
Failure sites raise ``AppError`` (or one of its subclasses) on purpose; the
pipeline converts it straight into the error envelope.  Anything else that
escapes a handler becomes ``INTERNAL_ERROR`` with the generic message.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
	# Authentication (401)
	UNAUTHORIZED = "UNAUTHORIZED"
	INVALID_TOKEN = "INVALID_TOKEN"
	TOKEN_EXPIRED = "TOKEN_EXPIRED"
	INVALID_API_KEY = "INVALID_API_KEY"
	# Authorization (403)
	FORBIDDEN = "FORBIDDEN"
	INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
	SCOPE_REQUIRED = "SCOPE_REQUIRED"
	# Input validation (400)
	VALIDATION_ERROR = "VALIDATION_ERROR"
	INVALID_REQUEST = "INVALID_REQUEST"
	MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
	INVALID_FORMAT = "INVALID_FORMAT"
	# Resource state (404, 409)
	NOT_FOUND = "NOT_FOUND"
	ALREADY_EXISTS = "ALREADY_EXISTS"
	ALREADY_CLAIMED = "ALREADY_CLAIMED"
	CONFLICT = "CONFLICT"
	# Business rules (400)
	THRESHOLD_NOT_MET = "THRESHOLD_NOT_MET"
	REWARDS_EXCEED_LIMIT = "REWARDS_EXCEED_LIMIT"
	NOT_COMPLETED = "NOT_COMPLETED"
	INVALID_STATE = "INVALID_STATE"
	# Throughput (429)
	RATE_LIMITED = "RATE_LIMITED"
	# Billing (402)
	CREDITS_EXHAUSTED = "CREDITS_EXHAUSTED"
	# Infrastructure (500, 502, 503)
	INTERNAL_ERROR = "INTERNAL_ERROR"
	DATABASE_ERROR = "DATABASE_ERROR"
	EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
	SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


ERROR_MESSAGES: dict[ErrorCode, str] = {
	ErrorCode.UNAUTHORIZED: "Authentication required",
	ErrorCode.INVALID_TOKEN: "Invalid or malformed token",
	ErrorCode.TOKEN_EXPIRED: "Token has expired",
	ErrorCode.INVALID_API_KEY: "Invalid or inactive API key",
	ErrorCode.FORBIDDEN: "Access denied",
	ErrorCode.INSUFFICIENT_PERMISSIONS: "Insufficient permissions for this operation",
	ErrorCode.SCOPE_REQUIRED: "Required scope not present on token",
	ErrorCode.VALIDATION_ERROR: "Request validation failed",
	ErrorCode.INVALID_REQUEST: "Invalid request format",
	ErrorCode.MISSING_REQUIRED_FIELD: "Required field is missing",
	ErrorCode.INVALID_FORMAT: "Field format is invalid",
	ErrorCode.NOT_FOUND: "Resource not found",
	ErrorCode.ALREADY_EXISTS: "Resource already exists",
	ErrorCode.ALREADY_CLAIMED: "Reward has already been claimed",
	ErrorCode.CONFLICT: "Operation conflicts with current state",
	ErrorCode.THRESHOLD_NOT_MET: "Score does not meet the required threshold",
	ErrorCode.REWARDS_EXCEED_LIMIT: "Requested rewards exceed maximum allowed",
	ErrorCode.NOT_COMPLETED: "Resource is not in completed state",
	ErrorCode.INVALID_STATE: "Resource is in an invalid state for this operation",
	ErrorCode.RATE_LIMITED: "Too many requests. Please try again later",
	ErrorCode.CREDITS_EXHAUSTED: "AI credits exhausted",
	ErrorCode.INTERNAL_ERROR: "An internal error occurred",
	ErrorCode.DATABASE_ERROR: "Database operation failed",
	ErrorCode.EXTERNAL_SERVICE_ERROR: "External service request failed",
	ErrorCode.SERVICE_UNAVAILABLE: "Service temporarily unavailable",
}


HTTP_STATUS: dict[ErrorCode, int] = {
	ErrorCode.UNAUTHORIZED: 401,
	ErrorCode.INVALID_TOKEN: 401,
	ErrorCode.TOKEN_EXPIRED: 401,
	ErrorCode.INVALID_API_KEY: 401,
	ErrorCode.FORBIDDEN: 403,
	ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
	ErrorCode.SCOPE_REQUIRED: 403,
	ErrorCode.VALIDATION_ERROR: 400,
	ErrorCode.INVALID_REQUEST: 400,
	ErrorCode.MISSING_REQUIRED_FIELD: 400,
	ErrorCode.INVALID_FORMAT: 400,
	ErrorCode.THRESHOLD_NOT_MET: 400,
	ErrorCode.REWARDS_EXCEED_LIMIT: 400,
	ErrorCode.NOT_COMPLETED: 400,
	ErrorCode.INVALID_STATE: 400,
	ErrorCode.NOT_FOUND: 404,
	ErrorCode.ALREADY_EXISTS: 409,
	ErrorCode.ALREADY_CLAIMED: 409,
	ErrorCode.CONFLICT: 409,
	ErrorCode.RATE_LIMITED: 429,
	ErrorCode.CREDITS_EXHAUSTED: 402,
	ErrorCode.INTERNAL_ERROR: 500,
	ErrorCode.DATABASE_ERROR: 500,
	ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
	ErrorCode.SERVICE_UNAVAILABLE: 503,
}


def get_http_status(code: ErrorCode) -> int:
	return HTTP_STATUS[code]


class AppError(Exception):
	"""A closed-set error code paired with a message and optional details."""

	def __init__(self, code: ErrorCode, message: Optional[str] = None, details: Any = None) -> None:
		self.code = ErrorCode(code)
		self.message = message or ERROR_MESSAGES[self.code]
		self.details = details
		super().__init__(self.message)

	@property
	def status(self) -> int:
		return get_http_status(self.code)

	def __repr__(self) -> str:
		return f"{type(self).__name__}({self.code.value!r}, {self.message!r})"


class AuthenticationError(AppError):
	def __init__(self, message: Optional[str] = None, code: ErrorCode = ErrorCode.UNAUTHORIZED) -> None:
		super().__init__(code, message)


class ValidationFailed(AppError):
	def __init__(self, message: str, details: Any = None) -> None:
		super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class NotFoundError(AppError):
	def __init__(self, resource: str, message: Optional[str] = None) -> None:
		super().__init__(ErrorCode.NOT_FOUND, message or f"{resource} not found")
		self.resource = resource


def forbidden_error(message: Optional[str] = None) -> AppError:
	return AppError(ErrorCode.FORBIDDEN, message)


def is_app_error(error: BaseException) -> bool:
	return isinstance(error, AppError)


def to_app_error(error: BaseException) -> AppError:
	"""Return ``error`` unchanged if it is an ``AppError``, else ``INTERNAL_ERROR``.

	The original exception text is not copied into the result; callers log it.
	"""
	if isinstance(error, AppError):
		return error
	return AppError(ErrorCode.INTERNAL_ERROR)
