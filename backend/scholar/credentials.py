from __future__ import annotations
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .errors import AppError, AuthenticationError, ErrorCode
from .models import AuthUser, IntegrationToken, utcnow
from .settings import settings


logger = logging.getLogger(__name__)

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


BEARER_PREFIX = "Bearer "
API_KEY_HEADER = "x-api-key"
# Grants every scope
ADMIN_SCOPE = "admin"


def hash_password(password: str) -> str:
	return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(plain_password, hashed_password)


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=1)
	return datetime.now(timezone.utc) + delta


def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = {"sub": user_id, "email": email, "exp": _resolve_expiry(expires_delta)}
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def extract_bearer_token(request: Request) -> Optional[str]:
	header = request.headers.get("authorization")
	if not header or not header.startswith(BEARER_PREFIX):
		return None
	return header[len(BEARER_PREFIX):] or None


def extract_api_key(request: Request) -> Optional[str]:
	return request.headers.get(API_KEY_HEADER) or None


def validate_bearer_token(db: Session, token: str) -> AuthUser:
	"""Resolve a JWT to its ``AuthUser`` or raise a 401 ``AppError``."""
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except ExpiredSignatureError:
		raise AuthenticationError(code=ErrorCode.TOKEN_EXPIRED)
	except JWTError:
		raise AuthenticationError(code=ErrorCode.INVALID_TOKEN)
	user_id = payload.get("sub")
	if not user_id:
		raise AuthenticationError(code=ErrorCode.INVALID_TOKEN)
	user = db.get(AuthUser, user_id)
	if user is None:
		raise AuthenticationError("User not found for token")
	return user


def hash_api_key(api_key: str) -> str:
	return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def validate_api_key(db: Session, api_key: str) -> IntegrationToken:
	token_hash = hash_api_key(api_key)
	token = (
		db.query(IntegrationToken)
		.filter(IntegrationToken.token_hash == token_hash, IntegrationToken.is_active.is_(True))
		.first()
	)
	if token is None:
		raise AppError(ErrorCode.INVALID_API_KEY)
	try:
		token.last_used_at = utcnow()
		db.commit()
	except Exception as err:
		# Usage tracking only; the key itself is valid
		db.rollback()
		logger.warning("Failed to record last_used_at for token %s: %r", token.id, err)
	return token


def has_scope(token: IntegrationToken, scope: str) -> bool:
	scopes = token.scopes or []
	if not scopes:
		return True
	return scope in scopes or ADMIN_SCOPE in scopes


def constant_time_equals(a: str, b: str) -> bool:
	left = a.encode("utf-8")
	right = b.encode("utf-8")
	if len(left) != len(right):
		return False
	result = 0
	for x, y in zip(left, right):
		result |= x ^ y
	return result == 0


def validate_simple_api_key(api_key: Optional[str], expected: Optional[str]) -> bool:
	if not api_key or not expected:
		return False
	return constant_time_equals(api_key, expected)
