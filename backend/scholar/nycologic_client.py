from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .errors import AppError, ErrorCode
from .settings import settings


logger = logging.getLogger(__name__)

SOURCE_APP = "scholar-app"


class NycologicError(Exception):
	"""Base class for curriculum API failures. Each subclass is one failure mode."""

	reason = "error"


class NycologicTimeout(NycologicError):
	reason = "timeout"


class NycologicUnreachable(NycologicError):
	reason = "unreachable"


class NycologicRejected(NycologicError):
	reason = "rejected"

	def __init__(self, status_code: int, body: str) -> None:
		self.status_code = status_code
		self.body = body[:500]
		super().__init__(f"NYCologic API responded with status {status_code}")


class NycologicBadResponse(NycologicError):
	reason = "invalid_response"

	def __init__(self, body: str) -> None:
		self.body = body[:200]
		super().__init__("NYCologic API returned invalid JSON")


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class NycologicClient:
	def __init__(self, base_url: Optional[str] = None, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
		self.base_url = base_url or settings.nycologic_api_url
		if not self.base_url:
			raise ValueError("NYCOLOGIC_API_URL is not configured")
		self._client = httpx.AsyncClient(
			transport=transport,
			headers={"Content-Type": "application/json", "x-source-app": SOURCE_APP},
		)

	async def __aenter__(self) -> "NycologicClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()

	async def aclose(self) -> None:
		await self._client.aclose()

	async def _post(self, payload: Dict[str, Any], timeout: float) -> Any:
		try:
			r = await self._client.post(self.base_url, json=payload, timeout=timeout)
		except httpx.TimeoutException as err:
			raise NycologicTimeout(f"NYCologic API timed out after {timeout:g}s") from err
		except httpx.RequestError as err:
			raise NycologicUnreachable(f"Failed to connect to NYCologic API: {err}") from err
		if r.status_code < 200 or r.status_code >= 300:
			raise NycologicRejected(r.status_code, r.text)
		try:
			return r.json()
		except ValueError as err:
			raise NycologicBadResponse(r.text) from err

	async def call(self, action: str, data: Dict[str, Any], *, timeout: float) -> Any:
		payload = {"source": SOURCE_APP, "action": action, "timestamp": _now_iso(), "data": data}
		return await self._post(payload, timeout)

	async def get_teacher_classes(self, teacher_email: str, teacher_id: str) -> List[Dict[str, Any]]:
		result = await self.call(
			"get_teacher_classes",
			{"teacher_email": teacher_email, "teacher_id": teacher_id},
			timeout=settings.nycologic_class_list_timeout,
		)
		classes = result.get("classes") if isinstance(result, dict) else None
		return [c for c in (classes or []) if isinstance(c, dict) and isinstance(c.get("name"), str) and c["name"]]

	async def get_class_students(
		self,
		class_name: str,
		external_class_id: Optional[str],
		teacher_email: str,
	) -> List[Dict[str, Any]]:
		result = await self.call(
			"get_class_students",
			{"class_name": class_name, "class_id": external_class_id, "teacher_email": teacher_email},
			timeout=settings.nycologic_roster_timeout,
		)
		students = result.get("students") if isinstance(result, dict) else None
		return [s for s in (students or []) if isinstance(s, dict)]

	async def send_event(self, event_type: str, data: Dict[str, Any]) -> Any:
		payload = {"source": SOURCE_APP, "timestamp": _now_iso(), "event_type": event_type, "data": data}
		return await self._post(payload, settings.nycologic_roster_timeout)


def get_nycologic_client() -> NycologicClient:
	return NycologicClient()


def as_app_error(err: NycologicError) -> AppError:
	"""Map a curriculum API failure onto the error taxonomy.

	Timeouts and connection failures mean the service is unavailable (503);
	a rejected call or unreadable body is an upstream failure (502).
	"""
	details: Dict[str, Any] = {"reason": err.reason}
	if isinstance(err, NycologicRejected):
		details.update(status=err.status_code, body=err.body)
	elif isinstance(err, NycologicBadResponse):
		details["body"] = err.body
	if isinstance(err, (NycologicTimeout, NycologicUnreachable)):
		return AppError(ErrorCode.SERVICE_UNAVAILABLE, str(err), details)
	return AppError(ErrorCode.EXTERNAL_SERVICE_ERROR, str(err), details)
