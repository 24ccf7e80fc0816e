from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, String, DateTime, ForeignKey, Integer, JSON, Text, UniqueConstraint
from .db import Base


def utcnow() -> datetime:
	# Naive UTC: SQLite drops tzinfo, so every stored timestamp is naive UTC
	return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
	return str(uuid.uuid4())


class AuthUser(Base):
	__tablename__ = "auth_users"
	id = Column(String(36), primary_key=True, default=_uuid)
	email = Column(String(256), nullable=False, unique=True, index=True)
	password_hash = Column(String(256), nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Profile(Base):
	__tablename__ = "profiles"
	id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), primary_key=True)
	full_name = Column(String(256), nullable=False)
	preferred_language = Column(String(8), nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class UserRole(Base):
	__tablename__ = "user_roles"
	id = Column(String(36), primary_key=True, default=_uuid)
	user_id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, unique=True)
	# "student" | "teacher" | "parent"
	role = Column(String(16), nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class StudentProfile(Base):
	__tablename__ = "student_profiles"
	id = Column(String(36), primary_key=True, default=_uuid)
	user_id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, unique=True)
	grade_level = Column(Integer, nullable=True)
	reading_level = Column(String(32), nullable=True)
	math_level = Column(String(32), nullable=True)
	skill_tags = Column(JSON, nullable=True)
	strengths = Column(JSON, nullable=True)
	weaknesses = Column(JSON, nullable=True)
	accommodations = Column(JSON, nullable=True)
	xp = Column(Integer, default=0, nullable=False)
	coins = Column(Integer, default=0, nullable=False)
	current_streak = Column(Integer, default=0, nullable=False)
	longest_streak = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SchoolClass(Base):
	__tablename__ = "classes"
	id = Column(String(36), primary_key=True, default=_uuid)
	teacher_id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, index=True)
	name = Column(String(256), nullable=False)
	class_code = Column(String(16), nullable=False, unique=True)
	grade_level = Column(Integer, nullable=True)
	grade_band = Column(String(16), nullable=True)
	subject = Column(String(64), nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Enrollment(Base):
	__tablename__ = "enrollments"
	__table_args__ = (UniqueConstraint("class_id", "student_id", name="uq_enrollment_class_student"),)
	id = Column(String(36), primary_key=True, default=_uuid)
	class_id = Column(String(36), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
	student_id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False)
	enrolled_at = Column(DateTime, default=utcnow, nullable=False)


class PendingEnrollment(Base):
	__tablename__ = "pending_enrollments"
	__table_args__ = (UniqueConstraint("class_id", "email", name="uq_pending_class_email"),)
	id = Column(String(36), primary_key=True, default=_uuid)
	email = Column(String(256), nullable=False, index=True)
	class_id = Column(String(36), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
	teacher_id = Column(String(36), nullable=False)
	student_name = Column(String(256), nullable=True)
	processed = Column(Boolean, default=False, nullable=False)
	processed_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class Standard(Base):
	__tablename__ = "nys_standards"
	id = Column(String(36), primary_key=True, default=_uuid)
	code = Column(String(64), nullable=False, unique=True)
	subject = Column(String(64), nullable=False)
	grade_band = Column(String(16), nullable=False)
	domain = Column(String(128), nullable=False)
	cluster = Column(Text, nullable=True)
	standard_text = Column(Text, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class StudentStandardMastery(Base):
	__tablename__ = "student_standard_mastery"
	__table_args__ = (UniqueConstraint("student_id", "standard_id", name="uq_mastery_student_standard"),)
	id = Column(String(36), primary_key=True, default=_uuid)
	student_id = Column(String(36), nullable=False, index=True)
	standard_id = Column(String(36), ForeignKey("nys_standards.id", ondelete="CASCADE"), nullable=False)
	attempts_count = Column(Integer, default=0, nullable=False)
	correct_count = Column(Integer, default=0, nullable=False)
	# "not_started" | "developing" | "approaching" | "mastered"
	mastery_level = Column(String(16), default="not_started", nullable=False)
	last_attempt_at = Column(DateTime, nullable=True)
	mastered_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Assignment(Base):
	__tablename__ = "assignments"
	id = Column(String(36), primary_key=True, default=_uuid)
	class_id = Column(String(36), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
	title = Column(String(512), nullable=False)
	description = Column(Text, nullable=True)
	subject = Column(String(64), nullable=True)
	due_at = Column(DateTime, nullable=False)
	standard_id = Column(String(36), ForeignKey("nys_standards.id"), nullable=True)
	printable_url = Column(Text, nullable=True)
	external_ref = Column(String(256), nullable=True, index=True)
	xp_reward = Column(Integer, default=50, nullable=False)
	coin_reward = Column(Integer, default=25, nullable=False)
	status = Column(String(16), default="active", nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Question(Base):
	__tablename__ = "questions"
	id = Column(String(36), primary_key=True, default=_uuid)
	assignment_id = Column(String(36), ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
	prompt = Column(Text, nullable=False)
	question_type = Column(String(32), default="short_answer", nullable=False)
	options = Column(JSON, nullable=True)
	answer_key = Column(JSON, nullable=False)
	difficulty = Column(Integer, default=1, nullable=False)
	hint = Column(Text, nullable=True)
	skill_tag = Column(String(128), nullable=True)
	order_index = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class Attempt(Base):
	__tablename__ = "attempts"
	id = Column(String(36), primary_key=True, default=_uuid)
	assignment_id = Column(String(36), ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
	student_id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, index=True)
	# "not_started" | "in_progress" | "submitted" | "verified" | "rejected"
	status = Column(String(16), default="not_started", nullable=False)
	score = Column(Integer, nullable=True)
	submitted_at = Column(DateTime, nullable=True)
	verified_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class PracticeSet(Base):
	__tablename__ = "practice_sets"
	id = Column(String(36), primary_key=True, default=_uuid)
	student_id = Column(String(36), nullable=False, index=True)
	title = Column(String(512), nullable=False)
	description = Column(Text, nullable=True)
	skill_tags = Column(JSON, nullable=True)
	source = Column(String(32), default="nycologic", nullable=False)
	external_ref = Column(String(256), nullable=True, index=True)
	# "pending" | "in_progress" | "completed"
	status = Column(String(16), default="pending", nullable=False)
	score = Column(Integer, nullable=True)
	printable_url = Column(Text, nullable=True)
	xp_reward = Column(Integer, default=25, nullable=False)
	coin_reward = Column(Integer, default=5, nullable=False)
	total_questions = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class PracticeQuestion(Base):
	__tablename__ = "practice_questions"
	id = Column(String(36), primary_key=True, default=_uuid)
	practice_set_id = Column(String(36), ForeignKey("practice_sets.id", ondelete="CASCADE"), nullable=False, index=True)
	prompt = Column(Text, nullable=False)
	question_type = Column(String(32), default="multiple_choice", nullable=False)
	options = Column(JSON, nullable=True)
	answer_key = Column(JSON, nullable=False)
	hint = Column(Text, nullable=True)
	difficulty = Column(Integer, default=1, nullable=False)
	skill_tag = Column(String(128), nullable=True)
	order_index = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class Notification(Base):
	__tablename__ = "notifications"
	id = Column(String(36), primary_key=True, default=_uuid)
	user_id = Column(String(36), nullable=False, index=True)
	type = Column(String(32), nullable=False)
	title = Column(String(256), nullable=False)
	message = Column(Text, nullable=False)
	icon = Column(String(16), nullable=True)
	read = Column(Boolean, default=False, nullable=False)
	data = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class RewardClaim(Base):
	__tablename__ = "reward_claims"
	id = Column(String(36), primary_key=True, default=_uuid)
	student_id = Column(String(36), nullable=False, index=True)
	claim_type = Column(String(32), nullable=False)
	reference_id = Column(String(64), nullable=False)
	# "<student_id>:<claim_type>:<reference_id>"; one claim per activity
	claim_key = Column(String(160), nullable=False, unique=True)
	xp_awarded = Column(Integer, default=0, nullable=False)
	coins_awarded = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class RewardLedger(Base):
	__tablename__ = "reward_ledger"
	id = Column(String(36), primary_key=True, default=_uuid)
	student_id = Column(String(36), nullable=False, index=True)
	xp_delta = Column(Integer, default=0, nullable=False)
	coin_delta = Column(Integer, default=0, nullable=False)
	reason = Column(Text, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class IntegrationToken(Base):
	__tablename__ = "integration_tokens"
	id = Column(String(36), primary_key=True, default=_uuid)
	name = Column(String(256), nullable=False)
	# Hex SHA-256 of the plain key; the key itself is never stored
	token_hash = Column(String(64), nullable=False, unique=True, index=True)
	source_app = Column(String(32), default="nycologic", nullable=False)
	webhook_url = Column(Text, nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	# Empty or NULL = unrestricted
	scopes = Column(JSON, nullable=True)
	created_by = Column(String(36), ForeignKey("auth_users.id"), nullable=True)
	last_used_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
