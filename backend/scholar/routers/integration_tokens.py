from __future__ import annotations
import logging
import secrets
from typing import Any, Dict

from fastapi import APIRouter, Request

from ..credentials import hash_api_key
from ..errors import NotFoundError, ValidationFailed
from ..models import IntegrationToken
from ..pipeline import ALL_METHODS, AUTH_MIDDLEWARE, RequestContext, create_handler, require_method, require_role
from ..schemas import TokenCreate
from ..validation import validate_request


logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])

TEACHER_STACK = [*AUTH_MIDDLEWARE, require_role("teacher")]


def generate_api_key() -> str:
	# 32 random bytes, hex encoded
	return secrets.token_hex(32)


def _token_dict(t: IntegrationToken) -> Dict[str, Any]:
	return {
		"id": t.id,
		"name": t.name,
		"source_app": t.source_app,
		"webhook_url": t.webhook_url,
		"is_active": t.is_active,
		"scopes": t.scopes or [],
		"last_used_at": t.last_used_at,
		"created_at": t.created_at,
	}


def _own_token(ctx: RequestContext, token_id: str) -> IntegrationToken:
	row = (
		ctx.db.query(IntegrationToken)
		.filter(IntegrationToken.id == token_id, IntegrationToken.created_by == ctx.user.id)
		.first()
	)
	if row is None:
		raise NotFoundError("Integration token")
	return row


async def tokens_collection(request: Request, ctx: RequestContext) -> Any:
	if request.method == "GET":
		rows = (
			ctx.db.query(IntegrationToken)
			.filter(IntegrationToken.created_by == ctx.user.id)
			.order_by(IntegrationToken.created_at.desc())
			.all()
		)
		return {"tokens": [_token_dict(t) for t in rows]}

	try:
		raw = await request.json()
	except ValueError:
		raise ValidationFailed("Invalid JSON body")
	body = validate_request(TokenCreate, raw)
	api_key = generate_api_key()
	row = IntegrationToken(
		name=body.name,
		token_hash=hash_api_key(api_key),
		source_app=body.source_app,
		webhook_url=body.webhook_url,
		scopes=list(body.scopes),
		created_by=ctx.user.id,
	)
	ctx.db.add(row)
	ctx.db.commit()
	logger.info("[%s] Integration token %s created by %s", ctx.request_id, row.id, ctx.user.id)
	# The plain key is only ever returned here
	return ctx.success({"token": _token_dict(row), "api_key": api_key}, status=201)


async def token_item(request: Request, ctx: RequestContext) -> Any:
	row = _own_token(ctx, request.path_params["token_id"])
	if request.method == "DELETE":
		ctx.db.delete(row)
		ctx.db.commit()
		return {"deleted": True, "id": request.path_params["token_id"]}
	row.is_active = False
	ctx.db.commit()
	return {"token": _token_dict(row)}


router.add_api_route(
	"/integration-tokens",
	create_handler(tokens_collection, middleware=[*TEACHER_STACK, require_method("GET", "POST")]),
	methods=ALL_METHODS,
)

router.add_api_route(
	"/integration-tokens/{token_id}",
	create_handler(token_item, middleware=[*TEACHER_STACK, require_method("PATCH", "DELETE")]),
	methods=ALL_METHODS,
)
