from __future__ import annotations
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .models import AuthUser, Enrollment, PendingEnrollment, Profile, SchoolClass, utcnow
from .students import find_user_by_email


logger = logging.getLogger(__name__)

CLASS_CODE_ALPHABET = string.ascii_uppercase + string.digits
CLASS_CODE_LENGTH = 6


def generate_class_code() -> str:
	return "".join(secrets.choice(CLASS_CODE_ALPHABET) for _ in range(CLASS_CODE_LENGTH))


def unique_class_code(existing: Set[str], preferred: Optional[str] = None) -> str:
	code = preferred or generate_class_code()
	while code in existing:
		code = generate_class_code()
	return code


def all_class_codes(db: Session) -> Set[str]:
	return {code for (code,) in db.query(SchoolClass.class_code).all()}


def create_class(
	db: Session,
	teacher_id: str,
	name: str,
	*,
	class_code: Optional[str] = None,
	grade_level: Optional[int] = None,
	grade_band: Optional[str] = None,
	subject: Optional[str] = None,
	existing_codes: Optional[Set[str]] = None,
) -> SchoolClass:
	codes = existing_codes if existing_codes is not None else all_class_codes(db)
	row = SchoolClass(
		teacher_id=teacher_id,
		name=name,
		class_code=unique_class_code(codes, class_code),
		grade_level=grade_level,
		grade_band=grade_band,
		subject=subject,
	)
	db.add(row)
	db.commit()
	codes.add(row.class_code)
	return row


def get_teacher_class(db: Session, class_id: str, teacher_id: Optional[str]) -> SchoolClass:
	row = (
		db.query(SchoolClass)
		.filter(SchoolClass.id == class_id, SchoolClass.teacher_id == teacher_id)
		.first()
	)
	if row is None:
		raise NotFoundError("Class", "Class not found or you don't have access")
	return row


def is_enrolled(db: Session, class_id: str, student_id: str) -> bool:
	return (
		db.query(Enrollment.id)
		.filter(Enrollment.class_id == class_id, Enrollment.student_id == student_id)
		.first()
		is not None
	)


def enroll_student(db: Session, class_id: str, student_id: str) -> bool:
	"""Enroll a student. Returns False when the enrollment already existed."""
	if is_enrolled(db, class_id, student_id):
		return False
	try:
		db.add(Enrollment(class_id=class_id, student_id=student_id))
		db.commit()
	except IntegrityError:
		# Lost a race with a concurrent insert; the enrollment exists
		db.rollback()
		logger.info("Student %s already enrolled in %s", student_id, class_id)
		return False
	return True


def upsert_pending_enrollment(
	db: Session,
	class_id: str,
	email: str,
	teacher_id: str,
	student_name: Optional[str] = None,
) -> PendingEnrollment:
	email = email.strip().lower()

	def _existing() -> Optional[PendingEnrollment]:
		return (
			db.query(PendingEnrollment)
			.filter(PendingEnrollment.class_id == class_id, PendingEnrollment.email == email)
			.first()
		)

	row = _existing()
	if row is None:
		row = PendingEnrollment(class_id=class_id, email=email, teacher_id=teacher_id, student_name=student_name)
		try:
			db.add(row)
			db.commit()
			return row
		except IntegrityError:
			db.rollback()
			row = _existing()
			if row is None:
				raise
	row.teacher_id = teacher_id
	row.student_name = student_name or row.student_name
	row.processed = False
	row.processed_at = None
	db.commit()
	return row


def pre_register_students(db: Session, school_class: SchoolClass, teacher_id: str, students: Iterable[Any]) -> Dict[str, Any]:
	"""Enroll known users right away; park unknown emails as pending enrollments."""
	results: List[Dict[str, Any]] = []
	for student in students:
		email = (student.email or "").strip().lower()
		if not email:
			results.append({"email": None, "success": False, "error": "Email is required"})
			continue
		try:
			user = find_user_by_email(db, email)
			if user is not None:
				enroll_student(db, school_class.id, user.id)
				results.append({"email": email, "success": True, "status": "enrolled_immediately"})
			else:
				upsert_pending_enrollment(db, school_class.id, email, teacher_id, student.name)
				results.append({"email": email, "success": True, "status": "pending_signup"})
		except SQLAlchemyError as err:
			db.rollback()
			logger.error("Pre-registration of %s failed: %r", email, err)
			results.append({"email": email, "success": False, "error": "Database operation failed"})

	successful = sum(1 for r in results if r["success"])
	enrolled = sum(1 for r in results if r.get("status") == "enrolled_immediately")
	pending = sum(1 for r in results if r.get("status") == "pending_signup")
	return {
		"message": f"Processed {successful} students: {enrolled} enrolled immediately, {pending} pending signup",
		"class_name": school_class.name,
		"enrolled": enrolled,
		"pending": pending,
		"results": results,
	}


def process_pending_enrollments(db: Session, user: AuthUser) -> int:
	"""Turn every open pending enrollment for the user's email into an enrollment."""
	rows = (
		db.query(PendingEnrollment)
		.filter(PendingEnrollment.email == user.email.lower(), PendingEnrollment.processed.is_(False))
		.all()
	)
	enrolled = 0
	for row in rows:
		if enroll_student(db, row.class_id, user.id):
			enrolled += 1
		row.processed = True
		row.processed_at = utcnow()
		db.commit()
	if rows:
		logger.info("Resolved %d pending enrollments for %s", len(rows), user.email)
	return enrolled


@dataclass
class RosterTally:
	enrolled: int = 0
	pending: int = 0

	def __add__(self, other: "RosterTally") -> "RosterTally":
		return RosterTally(self.enrolled + other.enrolled, self.pending + other.pending)


def reconcile_roster(db: Session, class_id: str, teacher_id: str, students: Iterable[Dict[str, Any]]) -> RosterTally:
	"""Match an external roster against local users.

	A roster entry whose ``user_id`` or email matches a local account is
	enrolled directly; anything else (or a failed enrollment) becomes a
	pending enrollment by email.
	"""
	tally = RosterTally()
	for student in students:
		email = student.get("email")
		if not isinstance(email, str) or not email.strip():
			continue
		user_id = student.get("user_id")
		name = student.get("name")
		if not user_id or db.get(Profile, user_id) is None:
			user = find_user_by_email(db, email)
			user_id = user.id if user is not None else None
		if user_id:
			if is_enrolled(db, class_id, user_id):
				continue
			try:
				if enroll_student(db, class_id, user_id):
					tally.enrolled += 1
				continue
			except SQLAlchemyError as err:
				db.rollback()
				logger.error("Failed to enroll %s, parking as pending: %r", email, err)
		upsert_pending_enrollment(db, class_id, email, teacher_id, name)
		tally.pending += 1
	return tally
