from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

from .. import nycologic_client
from ..cors import CORS_HEADERS
from ..enrollment import RosterTally, all_class_codes, create_class, reconcile_roster
from ..models import SchoolClass
from ..nycologic_client import NycologicClient, NycologicError, as_app_error
from ..pipeline import ALL_METHODS, AUTH_MIDDLEWARE, RequestContext, create_handler, require_method, require_role
from ..settings import settings


logger = logging.getLogger(__name__)

router = APIRouter(tags=["nycologic"])


def _as_int(value: Any) -> Optional[int]:
	try:
		return int(value) if value is not None else None
	except (TypeError, ValueError):
		return None


def _empty_result(**extra: Any) -> Dict[str, Any]:
	return {
		"imported": 0,
		"skipped": 0,
		"classes": [],
		"students_enrolled": 0,
		"students_pending": 0,
		**extra,
	}


async def import_nycologic_classes(request: Request, ctx: RequestContext) -> Any:
	user = ctx.user
	if not settings.nycologic_api_url:
		logger.info("[%s] NYCOLOGIC_API_URL not configured; import skipped", ctx.request_id)
		return _empty_result(configured=False, message="NYCOLOGIC_API_URL not configured")

	client = nycologic_client.get_nycologic_client()
	try:
		return await _import(ctx, client, user)
	finally:
		await client.aclose()


async def _import(ctx: RequestContext, client: NycologicClient, user) -> Dict[str, Any]:
	db = ctx.db
	logger.info("[%s] Fetching classes from NYCologic for %s", ctx.request_id, user.email)
	try:
		remote_classes = await client.get_teacher_classes(user.email, user.id)
	except NycologicError as err:
		logger.error("[%s] Class list fetch failed (%s): %s", ctx.request_id, err.reason, err)
		raise as_app_error(err)

	if not remote_classes:
		return _empty_result(configured=True, message="No classes found in NYCologic", synced_at=_now())

	own = db.query(SchoolClass).filter(SchoolClass.teacher_id == user.id).all()
	name_to_id = {c.name.lower(): c.id for c in own}
	# Codes are unique across every teacher, not only this one
	codes = all_class_codes(db)

	imported = 0
	skipped = 0
	imported_classes: List[Dict[str, str]] = []
	for remote in remote_classes:
		name = remote["name"]
		if name.lower() in name_to_id:
			logger.info("[%s] Skipping existing class %s", ctx.request_id, name)
			skipped += 1
			continue
		try:
			row = create_class(
				db,
				user.id,
				name,
				class_code=remote.get("class_code") or None,
				grade_level=_as_int(remote.get("grade_level")),
				grade_band=remote.get("grade_band"),
				subject=remote.get("subject"),
				existing_codes=codes,
			)
		except SQLAlchemyError as err:
			db.rollback()
			logger.error("[%s] Failed to import class %s: %r", ctx.request_id, name, err)
			skipped += 1
			continue
		name_to_id[name.lower()] = row.id
		imported += 1
		imported_classes.append({"name": row.name, "class_code": row.class_code})

	logger.info("[%s] Imported %d classes, skipped %d", ctx.request_id, imported, skipped)

	async def sync_roster(remote: Dict[str, Any]) -> RosterTally:
		class_id = name_to_id.get(remote["name"].lower())
		if not class_id:
			return RosterTally()
		try:
			students = await client.get_class_students(remote["name"], remote.get("id"), user.email)
		except NycologicError as err:
			logger.warning("[%s] Roster fetch for %s failed (%s)", ctx.request_id, remote["name"], err.reason)
			return RosterTally()
		try:
			return reconcile_roster(db, class_id, user.id, students)
		except SQLAlchemyError as err:
			db.rollback()
			logger.error("[%s] Roster sync for %s failed: %r", ctx.request_id, remote["name"], err)
			return RosterTally()

	tallies = await asyncio.gather(*(sync_roster(r) for r in remote_classes[: settings.nycologic_roster_fanout]))
	total = sum(tallies, RosterTally())
	logger.info("[%s] Enrolled %d students, %d pending", ctx.request_id, total.enrolled, total.pending)

	return {
		"configured": True,
		"imported": imported,
		"skipped": skipped,
		"classes": imported_classes,
		"students_enrolled": total.enrolled,
		"students_pending": total.pending,
		"synced_at": _now(),
	}


def _now() -> str:
	return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


router.add_api_route(
	"/import-nycologic-classes",
	create_handler(
		import_nycologic_classes,
		middleware=[*AUTH_MIDDLEWARE, require_method("POST"), require_role("teacher")],
		cors=CORS_HEADERS,
	),
	methods=ALL_METHODS,
)
