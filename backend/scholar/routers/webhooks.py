from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Request

from .. import nycologic_client
from ..assignments import create_assignment
from ..cors import CORS_HEADERS, CORS_HEADERS_WITH_API_KEY
from ..errors import AppError, ErrorCode, NotFoundError
from ..models import Assignment, Attempt, SchoolClass, Standard, StudentProfile, StudentStandardMastery, utcnow
from ..nycologic_client import NycologicError, as_app_error
from ..pipeline import (
	ALL_METHODS,
	AUTH_MIDDLEWARE,
	RequestContext,
	create_handler,
	log_request,
	parse_body,
	parse_json,
	require_api_key,
	require_method,
	require_simple_api_key,
)
from ..schemas import (
	AssignmentEvent,
	AssignmentPayload,
	GeobloxPracticeSetAction,
	MasteryUpdateAction,
	NotifyStudentAction,
	RemediationEvent,
	StatusQueryEvent,
	StudentProfileEvent,
	SyncEvent,
	WeaknessUpdateAction,
)
from ..settings import settings
from ..students import create_notification, merge_weaknesses, push_practice_set
from ..validation import decode_tagged


logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

EventHandler = Callable[[RequestContext, Any], Awaitable[Any]]


def _student_profile(ctx: RequestContext, student_id: str) -> StudentProfile:
	profile = ctx.db.query(StudentProfile).filter(StudentProfile.user_id == student_id).first()
	if profile is None:
		raise NotFoundError("Student", f"Student not found: {student_id}")
	return profile


# ---- Curriculum events (NYCologic, Scan Genius) ----

async def on_assignment(ctx: RequestContext, event: AssignmentEvent) -> Any:
	data = event.data
	school_class = ctx.db.query(SchoolClass).filter(SchoolClass.class_code == data.class_code).first()
	if school_class is None:
		raise NotFoundError("Class", f"Class not found: {data.class_code}")
	payload = AssignmentPayload(class_id=school_class.id, **data.model_dump(exclude={"class_code"}))
	row = create_assignment(ctx.db, payload)
	return {"assignment_id": row.id, "status": "received"}


async def on_student_profile(ctx: RequestContext, event: StudentProfileEvent) -> Any:
	profile = _student_profile(ctx, event.data.user_id)
	changes = event.data.model_dump(exclude={"user_id"}, exclude_none=True)
	for key, value in changes.items():
		setattr(profile, key, value)
	ctx.db.commit()
	return {"status": "profile_updated", "updated_fields": sorted(changes)}


async def on_status_query(ctx: RequestContext, event: StatusQueryEvent) -> Any:
	assignment = ctx.db.query(Assignment).filter(Assignment.external_ref == event.data.external_ref).first()
	if assignment is None:
		raise NotFoundError("Assignment", f"Assignment not found: {event.data.external_ref}")
	attempts = ctx.db.query(Attempt).filter(Attempt.assignment_id == assignment.id).all()
	return {
		"assignment_id": assignment.id,
		"status": assignment.status,
		"attempts": [
			{
				"id": a.id,
				"student_id": a.student_id,
				"status": a.status,
				"score": a.score,
				"submitted_at": a.submitted_at,
				"verified_at": a.verified_at,
			}
			for a in attempts
		],
	}


async def on_remediation(ctx: RequestContext, event: RemediationEvent) -> Any:
	data = event.data
	_student_profile(ctx, data.student_id)
	result = await push_practice_set(
		ctx.db,
		data.student_id,
		data,
		source="nycologic",
		notification_type="remediation",
	)
	result["weaknesses"] = merge_weaknesses(ctx.db, data.student_id, data.skill_tags)
	result["status"] = "remediation_created"
	return result


CURRICULUM_EVENTS: Dict[str, Any] = {
	"assignment": AssignmentEvent,
	"student_profile": StudentProfileEvent,
	"status_query": StatusQueryEvent,
}

CURRICULUM_HANDLERS: Dict[str, EventHandler] = {
	"assignment": on_assignment,
	"student_profile": on_student_profile,
	"status_query": on_status_query,
	"remediation": on_remediation,
}


def curriculum_webhook(events: Dict[str, Any]):
	async def handler(request: Request, ctx: RequestContext) -> Any:
		event = decode_tagged(ctx.body, "type", events)
		logger.info("[%s] webhook event %s", ctx.request_id, event.type)
		return await CURRICULUM_HANDLERS[event.type](ctx, event)
	return handler


nycologic_webhook = curriculum_webhook({**CURRICULUM_EVENTS, "remediation": RemediationEvent})
nycologic_webhook.__name__ = "nycologic_webhook"
scan_genius_webhook = curriculum_webhook(CURRICULUM_EVENTS)
scan_genius_webhook.__name__ = "scan_genius_webhook"


# ---- GeoBlox ----

async def geoblox_practice_set(ctx: RequestContext, action: GeobloxPracticeSetAction) -> Any:
	return await push_practice_set(ctx.db, action.data.student_id, action.data, source="geoblox")


async def geoblox_weaknesses(ctx: RequestContext, action: WeaknessUpdateAction) -> Any:
	data = action.data
	profile = _student_profile(ctx, data.student_id)
	if data.weak_topics:
		profile.weaknesses = list(data.weak_topics)
		ctx.db.commit()
	return {"student_id": data.student_id, "weaknesses": profile.weaknesses or []}


async def geoblox_notify(ctx: RequestContext, action: NotifyStudentAction) -> Any:
	data = action.data
	row = create_notification(
		ctx.db,
		data.student_id,
		"geoblox_message",
		"📬 Message from GeoBlox",
		data.message or "You have new personalized content available!",
		icon="📬",
		data={"content_type": data.content_type, "content_id": data.content_id, "source": "geoblox"},
	)
	return {"notification_id": row.id}


async def geoblox_mastery(ctx: RequestContext, action: MasteryUpdateAction) -> Any:
	data = action.data
	db = ctx.db
	standard = db.query(Standard).filter(Standard.code == data.standard_code).first()
	if standard is None:
		raise NotFoundError("Standard", f"Standard not found: {data.standard_code}")
	row = (
		db.query(StudentStandardMastery)
		.filter(
			StudentStandardMastery.student_id == data.student_id,
			StudentStandardMastery.standard_id == standard.id,
		)
		.first()
	)
	if row is None:
		row = StudentStandardMastery(student_id=data.student_id, standard_id=standard.id)
		db.add(row)
	now = utcnow()
	row.mastery_level = data.mastery_level
	row.attempts_count = data.attempts_count
	row.correct_count = data.correct_count
	row.last_attempt_at = now
	row.mastered_at = now if data.mastery_level == "mastered" else None
	db.commit()
	return {"standard_id": standard.id, "mastery_level": row.mastery_level}


GEOBLOX_ACTIONS: Dict[str, Any] = {
	"create_practice_set": GeobloxPracticeSetAction,
	"update_student_weaknesses": WeaknessUpdateAction,
	"notify_student": NotifyStudentAction,
	"sync_mastery_update": MasteryUpdateAction,
}

GEOBLOX_HANDLERS: Dict[str, EventHandler] = {
	"create_practice_set": geoblox_practice_set,
	"update_student_weaknesses": geoblox_weaknesses,
	"notify_student": geoblox_notify,
	"sync_mastery_update": geoblox_mastery,
}


async def geoblox_webhook(request: Request, ctx: RequestContext) -> Any:
	action = decode_tagged(ctx.body, "action", GEOBLOX_ACTIONS)
	logger.info("[%s] GeoBlox action %s", ctx.request_id, action.action)
	return await GEOBLOX_HANDLERS[action.action](ctx, action)


# ---- Outbound sync ----

async def sync_to_nycologic(request: Request, ctx: RequestContext) -> Any:
	event: SyncEvent = ctx.body
	if not settings.nycologic_api_url:
		raise AppError(ErrorCode.SERVICE_UNAVAILABLE, "NYCOLOGIC_API_URL not configured")
	client = nycologic_client.get_nycologic_client()
	try:
		logger.info("[%s] Syncing %s to NYCologic", ctx.request_id, event.type)
		result = await client.send_event(event.type, event.data)
	except NycologicError as err:
		logger.error("[%s] Sync failed (%s): %s", ctx.request_id, err.reason, err)
		raise as_app_error(err)
	finally:
		await client.aclose()
	return {
		"synced_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
		"nycologic_response": result,
	}


def _geoblox_secret():
	return settings.geoblox_api_key


_post_only = require_method("POST")

router.add_api_route(
	"/nycologic-webhook",
	create_handler(
		nycologic_webhook,
		middleware=[log_request, _post_only, require_api_key("webhooks"), parse_json],
		cors=CORS_HEADERS_WITH_API_KEY,
	),
	methods=ALL_METHODS,
)

router.add_api_route(
	"/scan-genius-webhook",
	create_handler(
		scan_genius_webhook,
		middleware=[log_request, _post_only, require_api_key("webhooks"), parse_json],
		cors=CORS_HEADERS_WITH_API_KEY,
	),
	methods=ALL_METHODS,
)

router.add_api_route(
	"/geoblox-webhook",
	create_handler(
		geoblox_webhook,
		middleware=[log_request, _post_only, require_simple_api_key(_geoblox_secret), parse_json],
		cors=CORS_HEADERS_WITH_API_KEY,
	),
	methods=ALL_METHODS,
)

router.add_api_route(
	"/sync-to-nycologic",
	create_handler(
		sync_to_nycologic,
		middleware=[*AUTH_MIDDLEWARE, _post_only, parse_body(SyncEvent)],
		cors=CORS_HEADERS,
	),
	methods=ALL_METHODS,
)
