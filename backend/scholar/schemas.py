from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


QuestionType = Literal["multiple_choice", "short_answer", "numeric", "drag_order", "matching"]
MasteryLevel = Literal["not_started", "developing", "approaching", "mastered"]


class _Payload(BaseModel):
	# External systems send extra keys freely; unknown keys are dropped
	model_config = ConfigDict(extra="ignore")


# ---- Assignments ----

class QuestionPayload(_Payload):
	prompt: str = Field(min_length=1)
	question_type: QuestionType = "short_answer"
	options: Optional[Any] = None
	answer_key: Any
	difficulty: int = Field(default=1, ge=1, le=5)
	hint: Optional[str] = None
	skill_tag: Optional[str] = None


class AssignmentPayload(_Payload):
	class_id: str = Field(min_length=1)
	title: str = Field(min_length=1)
	description: Optional[str] = None
	due_at: Optional[datetime] = None
	standard_code: Optional[str] = None
	standard_id: Optional[str] = None
	subject: Optional[str] = None
	xp_reward: int = Field(default=50, ge=0)
	coin_reward: int = Field(default=25, ge=0)
	printable_url: Optional[str] = None
	external_ref: Optional[str] = None
	questions: List[QuestionPayload] = Field(default_factory=list)


class BulkAssignmentPayload(_Payload):
	# Items stay raw so one bad item fails alone instead of failing the batch
	assignments: List[Dict[str, Any]]


# ---- Practice sets / direct-to-student ----

class PracticeQuestionPayload(_Payload):
	prompt: str = Field(min_length=1)
	question_type: str = "multiple_choice"
	options: Optional[Any] = None
	answer_key: Any
	hint: Optional[str] = None
	difficulty: int = Field(default=1, ge=1, le=5)
	skill_tag: Optional[str] = None


class PracticeContent(_Payload):
	title: str = Field(min_length=1)
	description: Optional[str] = None
	skill_tags: List[str] = Field(default_factory=list)
	printable_url: Optional[str] = None
	external_ref: Optional[str] = None
	xp_reward: int = Field(default=25, ge=0)
	coin_reward: int = Field(default=5, ge=0)
	questions: List[PracticeQuestionPayload] = Field(default_factory=list)


class StudentLookup(_Payload):
	student_id: Optional[str] = None
	student_email: Optional[str] = None
	student_external_ref: Optional[str] = None

	def lookup(self) -> "StudentLookup":
		return StudentLookup(
			student_id=self.student_id,
			student_email=self.student_email,
			student_external_ref=self.student_external_ref,
		)


# ---- teacher-push actions ----

class ListClassesAction(_Payload):
	action: Literal["list_classes"]


class ListStandardsAction(_Payload):
	action: Literal["list_standards"]
	grade_band: Optional[str] = None
	subject: Optional[str] = None


class StudentProgressAction(_Payload):
	action: Literal["get_student_progress"]
	class_id: str = Field(min_length=1)
	student_id: Optional[str] = None


class PreRegisterStudent(_Payload):
	email: Optional[str] = None
	name: Optional[str] = None


class PreRegisterAction(_Payload):
	action: Literal["pre_register_students"]
	class_id: str = Field(min_length=1)
	students: List[PreRegisterStudent] = Field(min_length=1)


class ListPendingAction(_Payload):
	action: Literal["list_pending_enrollments"]
	class_id: Optional[str] = None


class CreateClassAction(_Payload):
	action: Literal["create_class"]
	name: str = Field(min_length=1)
	class_code: Optional[str] = None
	grade_level: Optional[int] = None
	grade_band: Optional[str] = None
	subject: Optional[str] = None


class PushToStudentAction(StudentLookup, PracticeContent):
	action: Literal["push_to_student"]


class BulkPushToStudentsAction(PracticeContent):
	action: Literal["bulk_push_to_students"]
	students: List[StudentLookup] = Field(min_length=1)


class FindStudentAction(StudentLookup):
	action: Literal["find_student"]


# ---- Curriculum webhooks ----

class WebhookAssignmentData(_Payload):
	external_ref: str = Field(min_length=1)
	class_code: str = Field(min_length=1)
	title: str = Field(min_length=1)
	subject: Optional[str] = None
	description: Optional[str] = None
	due_at: Optional[datetime] = None
	printable_url: Optional[str] = None
	xp_reward: int = Field(default=50, ge=0)
	coin_reward: int = Field(default=10, ge=0)
	questions: List[QuestionPayload] = Field(default_factory=list)


class StudentProfileData(_Payload):
	user_id: str = Field(min_length=1)
	grade_level: Optional[int] = None
	reading_level: Optional[str] = None
	math_level: Optional[str] = None
	skill_tags: Optional[List[str]] = None
	strengths: Optional[List[str]] = None
	weaknesses: Optional[List[str]] = None
	accommodations: Optional[List[str]] = None


class StatusQueryData(_Payload):
	external_ref: str = Field(min_length=1)


class RemediationData(PracticeContent):
	student_id: str = Field(min_length=1)
	skill_tags: List[str] = Field(min_length=1)


class AssignmentEvent(_Payload):
	type: Literal["assignment"]
	data: WebhookAssignmentData


class StudentProfileEvent(_Payload):
	type: Literal["student_profile"]
	data: StudentProfileData


class StatusQueryEvent(_Payload):
	type: Literal["status_query"]
	data: StatusQueryData


class RemediationEvent(_Payload):
	type: Literal["remediation"]
	data: RemediationData


# ---- GeoBlox webhook ----

class GeobloxPracticeSetData(PracticeContent):
	student_id: str = Field(min_length=1)
	coin_reward: int = Field(default=10, ge=0)


class WeaknessUpdateData(_Payload):
	student_id: str = Field(min_length=1)
	weak_topics: List[str] = Field(default_factory=list)
	misconceptions: Optional[List[Dict[str, str]]] = None
	remediation_recommendations: Optional[List[str]] = None


class NotifyStudentData(_Payload):
	student_id: str = Field(min_length=1)
	content_type: Literal["practice_set", "skill_game", "assignment"]
	content_id: str = Field(min_length=1)
	message: Optional[str] = None


class MasteryUpdateData(_Payload):
	student_id: str = Field(min_length=1)
	standard_code: str = Field(min_length=1)
	mastery_level: MasteryLevel
	attempts_count: int = Field(default=0, ge=0)
	correct_count: int = Field(default=0, ge=0)

	@model_validator(mode="after")
	def _correct_within_attempts(self) -> "MasteryUpdateData":
		if self.correct_count > self.attempts_count:
			raise ValueError("correct_count cannot exceed attempts_count")
		return self


class GeobloxPracticeSetAction(_Payload):
	action: Literal["create_practice_set"]
	data: GeobloxPracticeSetData


class WeaknessUpdateAction(_Payload):
	action: Literal["update_student_weaknesses"]
	data: WeaknessUpdateData


class NotifyStudentAction(_Payload):
	action: Literal["notify_student"]
	data: NotifyStudentData


class MasteryUpdateAction(_Payload):
	action: Literal["sync_mastery_update"]
	data: MasteryUpdateData


# ---- Outbound sync ----

class SyncEvent(_Payload):
	type: Literal["assignment_completed", "student_progress", "badge_earned", "mastery_update"]
	data: Dict[str, Any] = Field(default_factory=dict)


# ---- Rewards ----

MAX_XP_PER_REQUEST = 1000
MAX_COINS_PER_REQUEST = 500
MAX_REASON_LENGTH = 500


class ClaimEvidence(_Payload):
	score: Optional[float] = None
	passing_threshold: Optional[float] = None
	questions_answered: Optional[int] = Field(default=None, ge=0)
	correct_answers: Optional[int] = Field(default=None, ge=0)
	time_spent_seconds: Optional[int] = Field(default=None, ge=0)
	goal_index: Optional[int] = Field(default=None, ge=0)


class AwardRewardsRequest(_Payload):
	claim_type: Literal["practice_set", "study_goal", "assignment"]
	reference_id: str = Field(min_length=1, max_length=64)
	xp_amount: int = Field(ge=0, le=MAX_XP_PER_REQUEST)
	coin_amount: int = Field(ge=0, le=MAX_COINS_PER_REQUEST)
	reason: str = Field(min_length=1, max_length=MAX_REASON_LENGTH)
	validation_data: Optional[ClaimEvidence] = None


# ---- Integration tokens ----

class TokenCreate(_Payload):
	name: str = Field(min_length=1, max_length=256)
	source_app: str = "nycologic"
	webhook_url: Optional[str] = None
	scopes: List[str] = Field(default_factory=list)
