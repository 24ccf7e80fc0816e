from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .effects import run_best_effort
from .errors import AppError, ErrorCode, NotFoundError, ValidationFailed
from .models import AuthUser, Notification, PracticeQuestion, PracticeSet, Profile, StudentProfile
from .schemas import PracticeContent, StudentLookup


logger = logging.getLogger(__name__)


@dataclass
class StudentMatch:
	student_id: str
	matched_by: str
	email: Optional[str] = None
	full_name: Optional[str] = None

	def as_dict(self) -> Dict[str, Any]:
		return {
			"student_id": self.student_id,
			"email": self.email,
			"full_name": self.full_name,
			"matched_by": self.matched_by,
		}


def _match(db: Session, user_id: str, matched_by: str, user: Optional[AuthUser] = None) -> StudentMatch:
	user = user or db.get(AuthUser, user_id)
	profile = db.get(Profile, user_id)
	return StudentMatch(
		student_id=user_id,
		matched_by=matched_by,
		email=user.email if user else None,
		full_name=profile.full_name if profile else None,
	)


def find_user_by_email(db: Session, email: str) -> Optional[AuthUser]:
	wanted = email.strip().lower()
	for user in db.query(AuthUser).all():
		if (user.email or "").lower() == wanted:
			return user
	return None


def find_student(db: Session, lookup: StudentLookup) -> StudentMatch:
	"""Resolve a student by id, then email, then a practice-set external ref.

	Only the identifiers present on ``lookup`` are tried; the first hit wins.
	"""
	tried: List[str] = []
	if lookup.student_id:
		tried.append(f"student_id '{lookup.student_id}'")
		user = db.get(AuthUser, lookup.student_id)
		if user is not None:
			return _match(db, user.id, "student_id", user)
	if lookup.student_email:
		tried.append(f"email '{lookup.student_email}'")
		user = find_user_by_email(db, lookup.student_email)
		if user is not None:
			return _match(db, user.id, "email", user)
	if lookup.student_external_ref:
		tried.append(f"external_ref '{lookup.student_external_ref}'")
		ps = (
			db.query(PracticeSet)
			.filter(PracticeSet.external_ref == lookup.student_external_ref)
			.order_by(PracticeSet.created_at.desc())
			.first()
		)
		if ps is not None:
			return _match(db, ps.student_id, "external_ref")
	if not tried:
		raise ValidationFailed(
			"Provide student_id, student_email or student_external_ref",
			{"_root": ["At least one student identifier is required"]},
		)
	raise NotFoundError("Student", f"No student found for {' or '.join(tried)}")


def create_practice_set(db: Session, student_id: str, content: PracticeContent, source: str) -> PracticeSet:
	"""Insert a practice set and its ordered questions in one commit."""
	description = content.description
	if not description and content.skill_tags:
		description = f"Practice exercises to strengthen: {', '.join(content.skill_tags)}"
	ps = PracticeSet(
		student_id=student_id,
		title=content.title,
		description=description,
		skill_tags=list(content.skill_tags),
		source=source,
		external_ref=content.external_ref,
		printable_url=content.printable_url,
		xp_reward=content.xp_reward,
		coin_reward=content.coin_reward,
		total_questions=len(content.questions),
		status="pending",
	)
	try:
		db.add(ps)
		db.flush()
		for index, q in enumerate(content.questions):
			db.add(PracticeQuestion(
				practice_set_id=ps.id,
				prompt=q.prompt,
				question_type=q.question_type,
				options=q.options,
				answer_key=q.answer_key,
				hint=q.hint,
				difficulty=q.difficulty,
				skill_tag=q.skill_tag,
				order_index=index,
			))
		db.commit()
	except SQLAlchemyError as err:
		db.rollback()
		logger.error("Failed to create practice set for %s: %r", student_id, err)
		raise AppError(ErrorCode.DATABASE_ERROR, "Failed to create practice set")
	return ps


def create_notification(
	db: Session,
	user_id: str,
	type_: str,
	title: str,
	message: str,
	icon: Optional[str] = None,
	data: Optional[Dict[str, Any]] = None,
) -> Notification:
	row = Notification(user_id=user_id, type=type_, title=title, message=message, icon=icon, data=data)
	try:
		db.add(row)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	return row


def notify_practice_set(db: Session, student_id: str, ps: PracticeSet, type_: str = "new_practice") -> Notification:
	skills = " & ".join((ps.skill_tags or [])[:2])
	focus = f" to help with {skills}" if skills else ""
	return create_notification(
		db,
		student_id,
		type_,
		"📚 New Practice Available!",
		f"You have a new practice set: \"{ps.title}\"{focus}. "
		f"Complete it to earn {ps.xp_reward} XP and {ps.coin_reward} coins!",
		icon="📝",
		data={
			"practice_set_id": ps.id,
			"skill_tags": ps.skill_tags or [],
			"xp_reward": ps.xp_reward,
			"coin_reward": ps.coin_reward,
		},
	)


async def push_practice_set(
	db: Session,
	student_id: str,
	content: PracticeContent,
	*,
	source: str,
	notification_type: str = "new_practice",
) -> Dict[str, Any]:
	ps = create_practice_set(db, student_id, content, source)
	practice_set_id = ps.id
	sent = await run_best_effort("practice notification", notify_practice_set, db, student_id, ps, notification_type)
	logger.info("Practice set %s pushed to %s (notification_sent=%s)", practice_set_id, student_id, sent)
	return {
		"student_id": student_id,
		"practice_set_id": practice_set_id,
		"questions_count": len(content.questions),
		"notification_sent": sent,
	}


async def push_to_student(db: Session, lookup: StudentLookup, content: PracticeContent) -> Dict[str, Any]:
	match = find_student(db, lookup)
	result = await push_practice_set(db, match.student_id, content, source="teacher")
	result["matched_by"] = match.matched_by
	return result


async def bulk_push_to_students(db: Session, lookups: Sequence[StudentLookup], content: PracticeContent) -> Dict[str, Any]:
	results: List[Dict[str, Any]] = []
	for index, lookup in enumerate(lookups):
		entry: Dict[str, Any] = {"index": index}
		try:
			entry.update(await push_to_student(db, lookup, content))
		except AppError as err:
			entry.update(success=False, error=err.message, code=err.code.value)
		else:
			entry["success"] = True
		results.append(entry)
	successful = sum(1 for r in results if r["success"])
	failed = len(results) - successful
	return {
		"message": f"Pushed to {successful} students, {failed} failed",
		"successful": successful,
		"failed": failed,
		"results": results,
	}


def merge_weaknesses(db: Session, student_id: str, tags: Sequence[str]) -> List[str]:
	profile = db.query(StudentProfile).filter(StudentProfile.user_id == student_id).first()
	if profile is None:
		return []
	merged = list(dict.fromkeys([*(profile.weaknesses or []), *tags]))
	profile.weaknesses = merged
	db.commit()
	return merged
