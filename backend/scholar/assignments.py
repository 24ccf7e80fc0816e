from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .enrollment import get_teacher_class
from .errors import AppError, ErrorCode, NotFoundError
from .models import Assignment, Question, SchoolClass, Standard, utcnow
from .schemas import AssignmentPayload, QuestionPayload
from .validation import safe_validate_request


logger = logging.getLogger(__name__)

DEFAULT_DUE_IN = timedelta(days=7)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
	if value is None or value.tzinfo is None:
		return value
	return value.astimezone(timezone.utc).replace(tzinfo=None)


def find_standard_id(db: Session, code: str) -> Optional[str]:
	row = db.query(Standard.id).filter(Standard.code == code).first()
	return row[0] if row else None


def insert_questions(db: Session, assignment_id: str, questions: Sequence[QuestionPayload]) -> int:
	for index, q in enumerate(questions):
		db.add(Question(
			assignment_id=assignment_id,
			prompt=q.prompt,
			question_type=q.question_type,
			options=q.options,
			answer_key=q.answer_key,
			difficulty=q.difficulty,
			hint=q.hint,
			skill_tag=q.skill_tag,
			order_index=index,
		))
	db.commit()
	return len(questions)


def create_assignment(db: Session, payload: AssignmentPayload, teacher_id: Optional[str] = None) -> Assignment:
	"""Insert one assignment (and its questions) for an existing class.

	With ``teacher_id`` the class must also belong to that teacher.
	The assignment is committed before the questions; a failed question insert
	is logged and leaves the assignment in place.
	"""
	if teacher_id is not None:
		get_teacher_class(db, payload.class_id, teacher_id)
	elif db.get(SchoolClass, payload.class_id) is None:
		raise NotFoundError("Class", f"Class not found: {payload.class_id}")

	standard_id = payload.standard_id
	if not standard_id and payload.standard_code:
		standard_id = find_standard_id(db, payload.standard_code)
		if standard_id is None:
			logger.info("Unknown standard code %s; assignment will have no standard", payload.standard_code)

	row = Assignment(
		class_id=payload.class_id,
		title=payload.title,
		description=payload.description,
		subject=payload.subject,
		due_at=to_naive_utc(payload.due_at) or utcnow() + DEFAULT_DUE_IN,
		standard_id=standard_id,
		printable_url=payload.printable_url,
		external_ref=payload.external_ref,
		xp_reward=payload.xp_reward,
		coin_reward=payload.coin_reward,
		status="active",
	)
	db.add(row)
	db.commit()

	if payload.questions:
		try:
			insert_questions(db, row.id, payload.questions)
		except SQLAlchemyError as err:
			db.rollback()
			logger.error("Error inserting questions for assignment %s: %r", row.id, err)
	return row


def _item_title(item: Any) -> Optional[str]:
	return item.get("title") if isinstance(item, dict) else None


def bulk_create_assignments(db: Session, items: List[Dict[str, Any]], teacher_id: Optional[str] = None) -> Dict[str, Any]:
	"""Create assignments one by one, in input order. Bad items fail alone."""
	results: List[Dict[str, Any]] = []
	for index, item in enumerate(items):
		entry: Dict[str, Any] = {"index": index, "title": _item_title(item)}
		parsed = safe_validate_request(AssignmentPayload, item)
		if not parsed.success:
			entry.update(success=False, error="Validation failed", details=parsed.errors)
			results.append(entry)
			continue
		try:
			row = create_assignment(db, parsed.data, teacher_id)
		except AppError as err:
			entry.update(success=False, error=err.message)
		except SQLAlchemyError as err:
			db.rollback()
			logger.error("Bulk item %d failed: %r", index, err)
			entry.update(success=False, error=AppError(ErrorCode.DATABASE_ERROR).message)
		else:
			entry.update(success=True, assignment_id=row.id)
		results.append(entry)

	successful = sum(1 for r in results if r["success"])
	failed = len(results) - successful
	return {
		"message": f"Created {successful} assignments, {failed} failed",
		"successful": successful,
		"failed": failed,
		"results": results,
	}
