from __future__ import annotations
import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Request

from ..assignments import bulk_create_assignments, create_assignment
from ..cors import CORS_HEADERS_FULL
from ..enrollment import create_class, get_teacher_class, pre_register_students
from ..errors import AppError, ErrorCode
from ..models import (
	Attempt,
	Enrollment,
	PendingEnrollment,
	Profile,
	SchoolClass,
	Standard,
	StudentProfile,
	StudentStandardMastery,
)
from ..pipeline import (
	ALL_METHODS,
	RequestContext,
	create_handler,
	log_request,
	parse_json,
	require_api_key,
	require_method,
)
from ..schemas import (
	AssignmentPayload,
	BulkAssignmentPayload,
	BulkPushToStudentsAction,
	CreateClassAction,
	FindStudentAction,
	ListClassesAction,
	ListPendingAction,
	ListStandardsAction,
	PreRegisterAction,
	PushToStudentAction,
	StudentProgressAction,
)
from ..students import bulk_push_to_students, find_student, push_to_student
from ..validation import decode_tagged, validate_request


logger = logging.getLogger(__name__)

router = APIRouter(tags=["teacher-push"])


ACTION_SCHEMAS: Dict[str, Any] = {
	"list_classes": ListClassesAction,
	"list_standards": ListStandardsAction,
	"get_student_progress": StudentProgressAction,
	"pre_register_students": PreRegisterAction,
	"list_pending_enrollments": ListPendingAction,
	"create_class": CreateClassAction,
	"push_to_student": PushToStudentAction,
	"bulk_push_to_students": BulkPushToStudentsAction,
	"find_student": FindStudentAction,
}

HINT = (
	"Send an assignment object with class_id and title, an assignments array, or use action: "
	+ " | ".join(f"'{name}'" for name in ACTION_SCHEMAS)
)


def _class_dict(c: SchoolClass) -> Dict[str, Any]:
	return {
		"id": c.id,
		"name": c.name,
		"class_code": c.class_code,
		"grade_level": c.grade_level,
		"grade_band": c.grade_band,
		"subject": c.subject,
	}


def _teacher_id(ctx: RequestContext) -> str:
	teacher_id = ctx.api_token.created_by if ctx.api_token else None
	if not teacher_id:
		raise AppError(ErrorCode.FORBIDDEN, "API key is not linked to a teacher")
	return teacher_id


async def list_classes(ctx: RequestContext, action: ListClassesAction) -> Any:
	rows = ctx.db.query(SchoolClass).filter(SchoolClass.teacher_id == _teacher_id(ctx)).all()
	return {"classes": [_class_dict(c) for c in rows]}


async def list_standards(ctx: RequestContext, action: ListStandardsAction) -> Any:
	q = ctx.db.query(Standard)
	if action.grade_band:
		q = q.filter(Standard.grade_band == action.grade_band)
	if action.subject:
		q = q.filter(Standard.subject == action.subject)
	standards = q.order_by(Standard.code).limit(100).all()
	return {
		"standards": [
			{
				"id": s.id,
				"code": s.code,
				"standard_text": s.standard_text,
				"subject": s.subject,
				"grade_band": s.grade_band,
				"domain": s.domain,
			}
			for s in standards
		]
	}


async def get_student_progress(ctx: RequestContext, action: StudentProgressAction) -> Any:
	db = ctx.db
	get_teacher_class(db, action.class_id, _teacher_id(ctx))
	q = (
		db.query(Enrollment.student_id, Profile.full_name)
		.outerjoin(Profile, Profile.id == Enrollment.student_id)
		.filter(Enrollment.class_id == action.class_id)
	)
	if action.student_id:
		q = q.filter(Enrollment.student_id == action.student_id)

	students = []
	for student_id, full_name in q.all():
		profile = db.query(StudentProfile).filter(StudentProfile.user_id == student_id).first()
		attempts = db.query(Attempt).filter(Attempt.student_id == student_id).all()
		mastery = db.query(StudentStandardMastery).filter(StudentStandardMastery.student_id == student_id).all()
		students.append({
			"student_id": student_id,
			"name": full_name,
			"xp": profile.xp if profile else 0,
			"coins": profile.coins if profile else 0,
			"streak": profile.current_streak if profile else 0,
			"assignments_completed": sum(1 for a in attempts if a.status == "verified"),
			"average_score": round(sum(a.score or 0 for a in attempts) / len(attempts)) if attempts else 0,
			"standards_mastered": sum(1 for m in mastery if m.mastery_level == "mastered"),
		})
	return {"students": students}


async def pre_register(ctx: RequestContext, action: PreRegisterAction) -> Any:
	teacher_id = _teacher_id(ctx)
	school_class = get_teacher_class(ctx.db, action.class_id, teacher_id)
	return pre_register_students(ctx.db, school_class, teacher_id, action.students)


async def list_pending_enrollments(ctx: RequestContext, action: ListPendingAction) -> Any:
	q = (
		ctx.db.query(PendingEnrollment, SchoolClass.name)
		.outerjoin(SchoolClass, SchoolClass.id == PendingEnrollment.class_id)
		.filter(PendingEnrollment.teacher_id == _teacher_id(ctx))
	)
	if action.class_id:
		q = q.filter(PendingEnrollment.class_id == action.class_id)
	rows = q.order_by(PendingEnrollment.created_at.desc()).all()
	pending = [
		{
			"id": p.id,
			"email": p.email,
			"student_name": p.student_name,
			"class_id": p.class_id,
			"class_name": class_name,
			"created_at": p.created_at,
			"processed": p.processed,
			"processed_at": p.processed_at,
		}
		for p, class_name in rows
	]
	return {
		"pending_enrollments": pending,
		"total": len(pending),
		"unprocessed": sum(1 for p in pending if not p["processed"]),
	}


async def create_class_action(ctx: RequestContext, action: CreateClassAction) -> Any:
	row = create_class(
		ctx.db,
		_teacher_id(ctx),
		action.name,
		class_code=action.class_code,
		grade_level=action.grade_level,
		grade_band=action.grade_band,
		subject=action.subject,
	)
	return ctx.success({"message": "Class created successfully", "class": _class_dict(row)}, status=201)


async def push_to_student_action(ctx: RequestContext, action: PushToStudentAction) -> Any:
	return await push_to_student(ctx.db, action.lookup(), action)


async def bulk_push_action(ctx: RequestContext, action: BulkPushToStudentsAction) -> Any:
	return await bulk_push_to_students(ctx.db, action.students, action)


async def find_student_action(ctx: RequestContext, action: FindStudentAction) -> Any:
	return find_student(ctx.db, action.lookup()).as_dict()


ACTION_HANDLERS: Dict[str, Callable[[RequestContext, Any], Awaitable[Any]]] = {
	"list_classes": list_classes,
	"list_standards": list_standards,
	"get_student_progress": get_student_progress,
	"pre_register_students": pre_register,
	"list_pending_enrollments": list_pending_enrollments,
	"create_class": create_class_action,
	"push_to_student": push_to_student_action,
	"bulk_push_to_students": bulk_push_action,
	"find_student": find_student_action,
}


async def teacher_push(request: Request, ctx: RequestContext) -> Any:
	body = ctx.body
	if not isinstance(body, dict):
		raise AppError(ErrorCode.INVALID_REQUEST, "Invalid request body", {"hint": HINT})

	if "action" in body:
		action = decode_tagged(body, "action", ACTION_SCHEMAS, HINT)
		logger.info("[%s] teacher-push action %s", ctx.request_id, action.action)
		return await ACTION_HANDLERS[action.action](ctx, action)

	if isinstance(body.get("assignments"), list):
		payload = validate_request(BulkAssignmentPayload, body)
		return bulk_create_assignments(ctx.db, payload.assignments, _teacher_id(ctx))

	if body.get("class_id") and body.get("title"):
		payload = validate_request(AssignmentPayload, body)
		row = create_assignment(ctx.db, payload, _teacher_id(ctx))
		return ctx.success({"message": "Assignment created successfully", "assignment_id": row.id}, status=201)

	raise AppError(ErrorCode.INVALID_REQUEST, "Invalid request body", {"hint": HINT})


router.add_api_route(
	"/teacher-push",
	create_handler(
		teacher_push,
		middleware=[log_request, require_method("POST"), require_api_key("teacher_push"), parse_json],
		cors=CORS_HEADERS_FULL,
	),
	methods=ALL_METHODS,
)
