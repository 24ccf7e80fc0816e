"""
Composable request pipeline for the integration endpoints.

Every endpoint is ``create_handler(handler, middleware=[...], cors=...)``.
A middleware step is ``async (request, ctx) -> Response | None``: returning a
response stops the chain, returning ``None`` hands over to the next step.
Handlers return plain data (wrapped in the success envelope) or a ready
``Response``; an ``AppError`` raised anywhere becomes the error envelope.
"""

from __future__ import annotations
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from .cors import CORS_HEADERS, is_preflight, preflight_response
from .credentials import (
	extract_api_key,
	extract_bearer_token,
	has_scope,
	validate_api_key,
	validate_bearer_token,
	validate_simple_api_key,
)
from .db import get_db
from .errors import AppError, ErrorCode
from .models import AuthUser, IntegrationToken, UserRole
from .responses import (
	app_error_response,
	error_response,
	internal_error_response,
	success_response,
	unauthorized_response,
	validation_error_response,
)
from .validation import safe_validate_request


logger = logging.getLogger(__name__)

# Pipeline endpoints answer every method themselves (preflight, 405 gate)
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _new_request_id() -> str:
	return str(uuid.uuid4())


@dataclass
class RequestContext:
	db: Session
	request_id: str = field(default_factory=_new_request_id)
	cors_headers: dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))
	user: Optional[AuthUser] = None
	api_token: Optional[IntegrationToken] = None
	body: Any = None
	started_at: float = field(default_factory=time.monotonic)

	def success(self, data: Any, status: int = 200) -> Response:
		return success_response(data, status=status, cors_headers=self.cors_headers, request_id=self.request_id)

	def error(self, code: ErrorCode, message: Optional[str] = None, **kwargs: Any) -> Response:
		return error_response(code, message, cors_headers=self.cors_headers, **kwargs)


Middleware = Callable[[Request, RequestContext], Awaitable[Optional[Response]]]
Handler = Callable[[Request, RequestContext], Awaitable[Any]]


def compose(*steps: Middleware) -> Middleware:
	async def chain(request: Request, ctx: RequestContext) -> Optional[Response]:
		for step in steps:
			response = await step(request, ctx)
			if response is not None:
				return response
		return None
	return chain


def create_handler(
	handler: Handler,
	middleware: Iterable[Middleware] = (),
	cors: dict[str, str] = CORS_HEADERS,
):
	chain = compose(*middleware)

	async def endpoint(request: Request, db: Session = Depends(get_db)) -> Response:
		if is_preflight(request):
			return preflight_response(cors)
		ctx = RequestContext(db=db, cors_headers=dict(cors))
		try:
			early = await chain(request, ctx)
			if early is not None:
				return early
			result = await handler(request, ctx)
		except AppError as err:
			logger.warning("[%s] %s: %s", ctx.request_id, err.code.value, err.message)
			db.rollback()
			return app_error_response(err, ctx.cors_headers)
		except Exception as err:
			logger.error("[%s] Unhandled error in %s", ctx.request_id, request.url.path)
			db.rollback()
			return internal_error_response(err, ctx.cors_headers)
		finally:
			logger.debug("[%s] done in %.1fms", ctx.request_id, (time.monotonic() - ctx.started_at) * 1000)
		if isinstance(result, Response):
			return result
		return ctx.success(result)

	endpoint.__name__ = getattr(handler, "__name__", "endpoint")
	return endpoint


# ---- Steps ----

async def log_request(request: Request, ctx: RequestContext) -> Optional[Response]:
	logger.info("[%s] %s %s", ctx.request_id, request.method, request.url.path)
	return None


async def require_auth(request: Request, ctx: RequestContext) -> Optional[Response]:
	token = extract_bearer_token(request)
	if not token:
		logger.info("[%s] Missing bearer token", ctx.request_id)
		return unauthorized_response("Missing authorization header", ctx.cors_headers)
	try:
		ctx.user = validate_bearer_token(ctx.db, token)
	except AppError as err:
		# Bearer failures always surface as UNAUTHORIZED; the finer code is only logged
		logger.info("[%s] Bearer token rejected: %s", ctx.request_id, err.code.value)
		return unauthorized_response(err.message, ctx.cors_headers)
	return None


def require_api_key(required_scope: Optional[str] = None) -> Middleware:
	async def step(request: Request, ctx: RequestContext) -> Optional[Response]:
		api_key = extract_api_key(request)
		if not api_key:
			return unauthorized_response("Missing x-api-key header", ctx.cors_headers)
		try:
			token = validate_api_key(ctx.db, api_key)
		except AppError as err:
			logger.info("[%s] API key rejected", ctx.request_id)
			return app_error_response(err, ctx.cors_headers)
		if required_scope and not has_scope(token, required_scope):
			return ctx.error(
				ErrorCode.SCOPE_REQUIRED,
				f"Token is missing required scope: {required_scope}",
				details={"required_scope": required_scope},
			)
		ctx.api_token = token
		return None
	return step


def require_simple_api_key(get_secret: Callable[[], Optional[str]]) -> Middleware:
	"""Compare ``x-api-key`` with a fixed shared secret in constant time."""
	async def step(request: Request, ctx: RequestContext) -> Optional[Response]:
		if not validate_simple_api_key(extract_api_key(request), get_secret()):
			logger.info("[%s] Shared-secret check failed", ctx.request_id)
			return ctx.error(ErrorCode.INVALID_API_KEY)
		return None
	return step


def require_role(role: str) -> Middleware:
	async def step(request: Request, ctx: RequestContext) -> Optional[Response]:
		if ctx.user is None:
			return unauthorized_response(cors_headers=ctx.cors_headers)
		row = ctx.db.query(UserRole).filter(UserRole.user_id == ctx.user.id).first()
		if row is None or row.role != role:
			logger.info("[%s] User %s is not a %s", ctx.request_id, ctx.user.id, role)
			return ctx.error(ErrorCode.FORBIDDEN, f"Only {role}s can perform this action")
		return None
	return step


def require_method(*methods: str) -> Middleware:
	allowed = [m.upper() for m in methods]

	async def step(request: Request, ctx: RequestContext) -> Optional[Response]:
		if request.method not in allowed:
			return ctx.error(
				ErrorCode.INVALID_REQUEST,
				f"Method not allowed. Use {', '.join(allowed)}.",
				status=405,
			)
		return None
	return step


async def parse_json(request: Request, ctx: RequestContext) -> Optional[Response]:
	try:
		ctx.body = await request.json()
	except ValueError:
		logger.info("[%s] Body is not valid JSON", ctx.request_id)
		return validation_error_response("Invalid JSON body", cors_headers=ctx.cors_headers)
	return None


def parse_body(schema: Any) -> Middleware:
	async def step(request: Request, ctx: RequestContext) -> Optional[Response]:
		failed = await parse_json(request, ctx)
		if failed is not None:
			return failed
		result = safe_validate_request(schema, ctx.body)
		if not result.success:
			logger.info("[%s] Body failed validation: %s", ctx.request_id, sorted(result.errors))
			return validation_error_response("Request validation failed", result.errors, ctx.cors_headers)
		ctx.body = result.data
		return None
	return step


AUTH_MIDDLEWARE: Sequence[Middleware] = (log_request, require_auth)
API_KEY_MIDDLEWARE: Sequence[Middleware] = (log_request, require_api_key())


def with_body_validation(schema: Any, base: Sequence[Middleware] = AUTH_MIDDLEWARE) -> list[Middleware]:
	return [*base, parse_body(schema)]
