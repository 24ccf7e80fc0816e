from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Request, Response

from ..assignments import create_assignment
from ..cors import CORS_HEADERS_FULL
from ..credentials import has_scope
from ..errors import AppError, ErrorCode, ValidationFailed
from ..models import (
	Assignment,
	Enrollment,
	Profile,
	SchoolClass,
	Standard,
	StudentProfile,
	StudentStandardMastery,
)
from ..pipeline import ALL_METHODS, RequestContext, create_handler, log_request, require_api_key, require_method
from ..schemas import AssignmentPayload
from ..validation import validate_request


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/external-api", tags=["external-api"])

# Scope each method needs on the integration token
METHOD_SCOPES = {"GET": "read", "POST": "write"}


async def require_method_scope(request: Request, ctx: RequestContext) -> Optional[Response]:
	scope = METHOD_SCOPES[request.method]
	if not has_scope(ctx.api_token, scope):
		return ctx.error(
			ErrorCode.SCOPE_REQUIRED,
			f"Token is missing required scope: {scope}",
			details={"required_scope": scope},
		)
	return None


def _owner_id(ctx: RequestContext) -> str:
	owner = ctx.api_token.created_by
	if not owner:
		raise AppError(ErrorCode.FORBIDDEN, "API key is not linked to a teacher")
	return owner


def _owned_class_ids(ctx: RequestContext) -> List[str]:
	return [cid for (cid,) in ctx.db.query(SchoolClass.id).filter(SchoolClass.teacher_id == _owner_id(ctx)).all()]


def _standard_dict(s: Optional[Standard]) -> Optional[Dict[str, Any]]:
	if s is None:
		return None
	return {"code": s.code, "subject": s.subject, "domain": s.domain, "standard_text": s.standard_text}


def list_students(ctx: RequestContext, params: Dict[str, str]) -> List[Dict[str, Any]]:
	db = ctx.db
	q = (
		db.query(Enrollment, SchoolClass, Profile, StudentProfile)
		.join(SchoolClass, SchoolClass.id == Enrollment.class_id)
		.outerjoin(Profile, Profile.id == Enrollment.student_id)
		.outerjoin(StudentProfile, StudentProfile.user_id == Enrollment.student_id)
		.filter(SchoolClass.teacher_id == _owner_id(ctx))
	)
	if params.get("class_id"):
		q = q.filter(Enrollment.class_id == params["class_id"])
	return [
		{
			"student_id": e.student_id,
			"enrolled_at": e.enrolled_at,
			"class": {"id": c.id, "name": c.name, "grade_band": c.grade_band},
			"full_name": p.full_name if p else None,
			"xp": sp.xp if sp else 0,
			"coins": sp.coins if sp else 0,
			"current_streak": sp.current_streak if sp else 0,
			"grade_level": sp.grade_level if sp else None,
		}
		for e, c, p, sp in q.all()
	]


def list_standards(ctx: RequestContext, params: Dict[str, str]) -> List[Dict[str, Any]]:
	q = ctx.db.query(Standard)
	if params.get("grade_band"):
		q = q.filter(Standard.grade_band == params["grade_band"])
	if params.get("subject"):
		q = q.filter(Standard.subject == params["subject"])
	return [
		{
			"id": s.id,
			"code": s.code,
			"subject": s.subject,
			"grade_band": s.grade_band,
			"domain": s.domain,
			"cluster": s.cluster,
			"standard_text": s.standard_text,
		}
		for s in q.order_by(Standard.code).all()
	]


def list_mastery(ctx: RequestContext, params: Dict[str, str]) -> List[Dict[str, Any]]:
	db = ctx.db
	# Only students enrolled in one of the token owner's classes
	students = db.query(Enrollment.student_id).filter(Enrollment.class_id.in_(_owned_class_ids(ctx)))
	q = (
		db.query(StudentStandardMastery, Standard)
		.outerjoin(Standard, Standard.id == StudentStandardMastery.standard_id)
		.filter(StudentStandardMastery.student_id.in_(students))
	)
	if params.get("student_id"):
		q = q.filter(StudentStandardMastery.student_id == params["student_id"])
	if params.get("standard_id"):
		q = q.filter(StudentStandardMastery.standard_id == params["standard_id"])
	return [
		{
			"id": m.id,
			"student_id": m.student_id,
			"standard_id": m.standard_id,
			"mastery_level": m.mastery_level,
			"attempts_count": m.attempts_count,
			"correct_count": m.correct_count,
			"last_attempt_at": m.last_attempt_at,
			"mastered_at": m.mastered_at,
			"standard": _standard_dict(s),
		}
		for m, s in q.all()
	]


def list_assignments(ctx: RequestContext, params: Dict[str, str]) -> List[Dict[str, Any]]:
	q = (
		ctx.db.query(Assignment, Standard)
		.outerjoin(Standard, Standard.id == Assignment.standard_id)
		.filter(Assignment.class_id.in_(_owned_class_ids(ctx)))
	)
	if params.get("class_id"):
		q = q.filter(Assignment.class_id == params["class_id"])
	if params.get("status"):
		q = q.filter(Assignment.status == params["status"])
	return [
		{
			"id": a.id,
			"class_id": a.class_id,
			"title": a.title,
			"description": a.description,
			"subject": a.subject,
			"due_at": a.due_at,
			"status": a.status,
			"xp_reward": a.xp_reward,
			"coin_reward": a.coin_reward,
			"external_ref": a.external_ref,
			"standard": _standard_dict(s),
		}
		for a, s in q.order_by(Assignment.due_at).all()
	]


def list_classes(ctx: RequestContext, params: Dict[str, str]) -> List[Dict[str, Any]]:
	rows = ctx.db.query(SchoolClass).filter(SchoolClass.teacher_id == _owner_id(ctx)).all()
	return [
		{
			"id": c.id,
			"name": c.name,
			"class_code": c.class_code,
			"grade_level": c.grade_level,
			"grade_band": c.grade_band,
			"subject": c.subject,
		}
		for c in rows
	]


READERS: Dict[str, Callable[[RequestContext, Dict[str, str]], List[Dict[str, Any]]]] = {
	"students": list_students,
	"standards": list_standards,
	"mastery": list_mastery,
	"assignments": list_assignments,
	"classes": list_classes,
}

WRITABLE = ["assignments"]


async def external_api(request: Request, ctx: RequestContext) -> Any:
	resource = request.path_params["resource"]
	if request.method == "GET":
		reader = READERS.get(resource)
		if reader is None:
			raise AppError(ErrorCode.NOT_FOUND, f"Unknown endpoint: {resource}", {"available_endpoints": list(READERS)})
		rows = reader(ctx, dict(request.query_params))
		return {resource: rows, "count": len(rows)}

	if resource not in WRITABLE:
		raise AppError(ErrorCode.NOT_FOUND, f"Unknown endpoint: {resource}", {"available_endpoints": WRITABLE})
	try:
		raw = await request.json()
	except ValueError:
		raise ValidationFailed("Invalid JSON body")
	payload = validate_request(AssignmentPayload, raw)
	row = create_assignment(ctx.db, payload, _owner_id(ctx))
	logger.info("[%s] External API created assignment %s", ctx.request_id, row.id)
	return ctx.success({"message": "Assignment created successfully", "assignment_id": row.id}, status=201)


router.add_api_route(
	"/{resource}",
	create_handler(
		external_api,
		middleware=[log_request, require_method("GET", "POST"), require_api_key(), require_method_scope],
		cors=CORS_HEADERS_FULL,
	),
	methods=ALL_METHODS,
)
