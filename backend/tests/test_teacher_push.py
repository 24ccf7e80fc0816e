"""Tests for POST /teacher-push."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from scholar import students as students_module
from scholar.models import (
	Assignment,
	Enrollment,
	Notification,
	PendingEnrollment,
	PracticeQuestion,
	PracticeSet,
	Question,
	SchoolClass,
	Standard,
)

from .conftest import make_token, make_user


@pytest.fixture
def push(client, api_key):
	async def _push(body, key=api_key):
		return await client.post("/teacher-push", json=body, headers={"x-api-key": key})
	return _push


class TestAuthAndShape:
	async def test_missing_key(self, client):
		resp = await client.post("/teacher-push", json={"action": "list_classes"})
		assert resp.status_code == 401
		assert resp.json()["error"]["code"] == "UNAUTHORIZED"

	async def test_wrong_key(self, push, api_key):
		resp = await push({"action": "list_classes"}, key="wrong")
		assert resp.status_code == 401
		assert resp.json()["error"]["code"] == "INVALID_API_KEY"

	async def test_scope_required(self, client, db_session, teacher):
		make_token(db_session, teacher, key="webhook-only", scopes=["webhooks"])
		resp = await client.post("/teacher-push", json={"action": "list_classes"}, headers={"x-api-key": "webhook-only"})
		assert resp.status_code == 403
		assert resp.json()["error"]["code"] == "SCOPE_REQUIRED"

	async def test_preflight(self, client):
		resp = await client.options("/teacher-push")
		assert resp.status_code == 200
		assert "x-api-key" in resp.headers["access-control-allow-headers"]
		assert "POST" in resp.headers["access-control-allow-methods"]

	async def test_get_not_allowed(self, client, api_key):
		resp = await client.get("/teacher-push", headers={"x-api-key": api_key})
		assert resp.status_code == 405

	async def test_unknown_action_lists_valid_actions(self, push):
		resp = await push({"action": "delete_everything"})
		assert resp.status_code == 400
		error = resp.json()["error"]
		assert error["code"] == "INVALID_REQUEST"
		assert "find_student" in error["details"]["hint"]
		assert "bulk_push_to_students" in error["details"]["valid"]

	async def test_unrecognized_shape(self, push):
		resp = await push({"hello": "world"})
		assert resp.status_code == 400
		assert "list_classes" in resp.json()["error"]["details"]["hint"]


class TestAssignments:
	async def test_single_push(self, push, school_class, db_session):
		db_session.add(Standard(code="8.EE.A.1", subject="math", grade_band="6-8", domain="Expressions", standard_text="Exponents"))
		db_session.commit()
		resp = await push({
			"class_id": school_class.id,
			"title": "Exponent rules",
			"standard_code": "8.EE.A.1",
			"questions": [
				{"prompt": "2^3?", "question_type": "numeric", "answer_key": 8},
				{"prompt": "3^2?", "question_type": "numeric", "answer_key": 9},
			],
		})
		assert resp.status_code == 201
		assignment_id = resp.json()["data"]["assignment_id"]
		db_session.expire_all()
		row = db_session.get(Assignment, assignment_id)
		standard = db_session.query(Standard).filter_by(code="8.EE.A.1").one()
		assert row.standard_id == standard.id
		assert row.due_at is not None
		prompts = [q.prompt for q in db_session.query(Question).filter_by(assignment_id=assignment_id).order_by(Question.order_index)]
		assert prompts == ["2^3?", "3^2?"]

	async def test_unknown_class(self, push, api_key):
		resp = await push({"class_id": "nope", "title": "Lost"})
		assert resp.status_code == 404
		assert resp.json()["error"]["code"] == "NOT_FOUND"

	async def test_other_teachers_class(self, push, db_session):
		other = make_user(db_session, "other@school.org", "teacher")
		foreign = SchoolClass(teacher_id=other.id, name="Biology", class_code="BIO222")
		db_session.add(foreign)
		db_session.commit()

		resp = await push({"class_id": foreign.id, "title": "Not yours"})
		assert resp.status_code == 404
		assert resp.json()["error"]["code"] == "NOT_FOUND"

		resp = await push({"assignments": [{"class_id": foreign.id, "title": "Not yours either"}]})
		data = resp.json()["data"]
		assert data["successful"] == 0
		assert data["failed"] == 1
		db_session.expire_all()
		assert db_session.query(Assignment).filter_by(class_id=foreign.id).count() == 0

	async def test_question_failure_keeps_assignment(self, push, school_class, db_session, monkeypatch):
		from scholar import assignments

		def broken(*args, **kwargs):
			raise SQLAlchemyError("questions table locked")

		monkeypatch.setattr(assignments, "insert_questions", broken)
		resp = await push({
			"class_id": school_class.id,
			"title": "Still created",
			"questions": [{"prompt": "1+1?", "answer_key": 2}],
		})
		assert resp.status_code == 201
		db_session.expire_all()
		assert db_session.get(Assignment, resp.json()["data"]["assignment_id"]) is not None

	async def test_bulk_counts_invalid_items_as_failures(self, push, school_class):
		items = [
			{"class_id": school_class.id, "title": "One"},
			{"class_id": school_class.id, "title": "Two"},
			{"class_id": school_class.id},
			{"class_id": school_class.id, "title": "Three"},
			{"class_id": school_class.id, "description": "no title"},
		]
		resp = await push({"assignments": items})
		assert resp.status_code == 200
		data = resp.json()["data"]
		assert data["successful"] == 3
		assert data["failed"] == 2
		assert [r["index"] for r in data["results"]] == [0, 1, 2, 3, 4]
		assert [r["success"] for r in data["results"]] == [True, True, False, True, False]
		assert "title" in data["results"][2]["details"]


class TestClassActions:
	async def test_list_classes_scoped_to_token_owner(self, push, school_class, db_session):
		other = make_user(db_session, "other@school.org", "teacher")
		db_session.add(SchoolClass(teacher_id=other.id, name="Biology", class_code="BIO222"))
		db_session.commit()
		resp = await push({"action": "list_classes"})
		names = [c["name"] for c in resp.json()["data"]["classes"]]
		assert names == ["Algebra 1"]

	async def test_create_class(self, push):
		resp = await push({"action": "create_class", "name": "Geometry", "grade_level": 9})
		assert resp.status_code == 201
		created = resp.json()["data"]["class"]
		assert created["name"] == "Geometry"
		assert len(created["class_code"]) == 6

	async def test_create_class_requires_name(self, push):
		resp = await push({"action": "create_class"})
		assert resp.status_code == 400
		assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

	async def test_pre_register(self, push, school_class, student, db_session):
		resp = await push({
			"action": "pre_register_students",
			"class_id": school_class.id,
			"students": [
				{"email": "JAMIE.LEE@students.org"},
				{"email": "New.Kid@Students.org", "name": "New Kid"},
				{"name": "No Email"},
			],
		})
		assert resp.status_code == 200
		data = resp.json()["data"]
		assert [r.get("status") for r in data["results"]] == ["enrolled_immediately", "pending_signup", None]
		assert data["enrolled"] == 1
		assert data["pending"] == 1
		db_session.expire_all()
		assert db_session.query(Enrollment).filter_by(class_id=school_class.id, student_id=student.id).count() == 1
		pending = db_session.query(PendingEnrollment).one()
		assert pending.email == "new.kid@students.org"

	async def test_pre_register_other_teachers_class(self, push, db_session):
		other = make_user(db_session, "other@school.org", "teacher")
		cls = SchoolClass(teacher_id=other.id, name="Chem", class_code="CHEM01")
		db_session.add(cls)
		db_session.commit()
		resp = await push({"action": "pre_register_students", "class_id": cls.id, "students": [{"email": "x@y.org"}]})
		assert resp.status_code == 404

	async def test_list_pending(self, push, school_class):
		await push({"action": "pre_register_students", "class_id": school_class.id, "students": [{"email": "a@b.org"}]})
		resp = await push({"action": "list_pending_enrollments"})
		data = resp.json()["data"]
		assert data["total"] == 1
		assert data["unprocessed"] == 1
		assert data["pending_enrollments"][0]["class_name"] == "Algebra 1"

	async def test_student_progress(self, push, school_class, student, db_session):
		db_session.add(Enrollment(class_id=school_class.id, student_id=student.id))
		db_session.commit()
		resp = await push({"action": "get_student_progress", "class_id": school_class.id})
		rows = resp.json()["data"]["students"]
		assert rows[0]["student_id"] == student.id
		assert rows[0]["name"] == "Jamie Lee"
		assert rows[0]["xp"] == 0


class TestStudents:
	async def test_find_student_email_case_insensitive(self, push, student):
		resp = await push({"action": "find_student", "student_email": "jamie.lee@STUDENTS.ORG"})
		assert resp.status_code == 200
		data = resp.json()["data"]
		assert data["student_id"] == student.id
		assert data["matched_by"] == "email"

	async def test_find_student_missing_email(self, push, student):
		resp = await push({"action": "find_student", "student_email": "ghost@students.org"})
		assert resp.status_code == 404
		assert "ghost@students.org" in resp.json()["error"]["message"]

	async def test_find_student_without_identifier(self, push):
		resp = await push({"action": "find_student"})
		assert resp.status_code == 400
		assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

	async def test_find_student_by_external_ref(self, push, student, db_session):
		db_session.add(PracticeSet(student_id=student.id, title="Old set", external_ref="nyc-stu-9"))
		db_session.commit()
		resp = await push({"action": "find_student", "student_external_ref": "nyc-stu-9"})
		assert resp.json()["data"]["matched_by"] == "external_ref"

	async def test_id_wins_over_email(self, push, student, db_session):
		other = make_user(db_session, "other.kid@students.org", "student")
		resp = await push({"action": "find_student", "student_id": student.id, "student_email": other.email})
		assert resp.json()["data"]["student_id"] == student.id

	async def test_push_to_student(self, push, student, db_session):
		resp = await push({
			"action": "push_to_student",
			"student_email": "jamie.lee@students.org",
			"title": "Fraction warmup",
			"skill_tags": ["fractions"],
			"questions": [
				{"prompt": "1/2 + 1/4?", "answer_key": "3/4"},
				{"prompt": "1/3 + 1/3?", "answer_key": "2/3"},
			],
		})
		assert resp.status_code == 200
		data = resp.json()["data"]
		assert data["notification_sent"] is True
		assert data["questions_count"] == 2
		db_session.expire_all()
		ps = db_session.get(PracticeSet, data["practice_set_id"])
		assert ps.student_id == student.id
		assert ps.source == "teacher"
		orders = [q.order_index for q in db_session.query(PracticeQuestion).filter_by(practice_set_id=ps.id)]
		assert sorted(orders) == [0, 1]
		assert db_session.query(Notification).filter_by(user_id=student.id).count() == 1

	async def test_notification_failure_does_not_fail_push(self, push, student, db_session, monkeypatch):
		def broken(*args, **kwargs):
			raise SQLAlchemyError("notifications unavailable")

		monkeypatch.setattr(students_module, "create_notification", broken)
		resp = await push({"action": "push_to_student", "student_id": student.id, "title": "Warmup"})
		assert resp.status_code == 200
		data = resp.json()["data"]
		assert data["notification_sent"] is False
		db_session.expire_all()
		assert db_session.get(PracticeSet, data["practice_set_id"]) is not None

	async def test_bulk_push_to_students(self, push, student):
		resp = await push({
			"action": "bulk_push_to_students",
			"title": "Weekly review",
			"students": [{"student_id": student.id}, {"student_email": "nobody@students.org"}],
		})
		data = resp.json()["data"]
		assert data["successful"] == 1
		assert data["failed"] == 1
		assert data["results"][1]["code"] == "NOT_FOUND"
