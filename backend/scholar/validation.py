"""
Adapter between pydantic and the error envelope.

Schemas are plain pydantic models (anything ``TypeAdapter`` accepts works).
Failures are flattened to ``{"dot.path": [messages]}`` so external callers see
every offending field at once.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Generic, Mapping, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

from .errors import AppError, ErrorCode


T = TypeVar("T")

ROOT_KEY = "_root"


@lru_cache(maxsize=None)
def _adapter(schema: Any) -> TypeAdapter:
	return TypeAdapter(schema)


def format_validation_errors(exc: ValidationError) -> dict[str, list[str]]:
	errors: dict[str, list[str]] = {}
	for err in exc.errors():
		path = ".".join(str(part) for part in err.get("loc", ())) or ROOT_KEY
		errors.setdefault(path, []).append(err.get("msg", "Invalid value"))
	return errors


@dataclass
class ValidationResult(Generic[T]):
	success: bool
	data: Optional[T] = None
	errors: dict[str, list[str]] = field(default_factory=dict)


def validate_request(schema: Type[T], data: Any) -> T:
	"""Validate ``data`` against ``schema`` or raise ``VALIDATION_ERROR``."""
	try:
		return _adapter(schema).validate_python(data)
	except ValidationError as exc:
		raise AppError(ErrorCode.VALIDATION_ERROR, details=format_validation_errors(exc))


def safe_validate_request(schema: Type[T], data: Any) -> ValidationResult[T]:
	try:
		return ValidationResult(success=True, data=_adapter(schema).validate_python(data))
	except ValidationError as exc:
		return ValidationResult(success=False, errors=format_validation_errors(exc))


def decode_tagged(body: Any, tag: str, variants: Mapping[str, Type[T]], hint: Optional[str] = None) -> T:
	"""Pick the schema named by ``body[tag]`` and validate against it.

	A missing or unknown tag is an ``INVALID_REQUEST``; a known tag with a bad
	payload is a ``VALIDATION_ERROR``.
	"""
	value = body.get(tag) if isinstance(body, dict) else None
	if not isinstance(value, str) or value not in variants:
		details: dict[str, Any] = {tag: value, "valid": sorted(variants)}
		if hint:
			details["hint"] = hint
		raise AppError(ErrorCode.INVALID_REQUEST, f"Unknown {tag}: {value}" if value else f"Missing {tag}", details)
	return validate_request(variants[value], body)
