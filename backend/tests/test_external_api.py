"""Tests for the API-key read/write surface under /external-api."""

from datetime import timedelta

import pytest

from scholar.models import Assignment, Enrollment, SchoolClass, Standard, StudentStandardMastery, utcnow

from .conftest import make_token, make_user


@pytest.fixture
def get(client, api_key):
	async def _get(resource, key=api_key, **params):
		return await client.get(f"/external-api/{resource}", params=params, headers={"x-api-key": key})
	return _get


@pytest.fixture
def roster(db_session, school_class, student):
	"""``student`` in the teacher's class plus another teacher's class and student."""
	other_teacher = make_user(db_session, "other@school.org", "teacher")
	other_student = make_user(db_session, "pat@students.org", "student", "Pat Kim")
	foreign = SchoolClass(teacher_id=other_teacher.id, name="Biology", class_code="BIO222")
	db_session.add(foreign)
	db_session.flush()
	db_session.add(Enrollment(class_id=school_class.id, student_id=student.id))
	db_session.add(Enrollment(class_id=foreign.id, student_id=other_student.id))
	db_session.commit()
	return {"foreign": foreign, "other_student": other_student}


class TestAuth:
	async def test_missing_key(self, client):
		resp = await client.get("/external-api/classes")
		assert resp.status_code == 401

	async def test_write_only_token_cannot_read(self, get, db_session, teacher):
		make_token(db_session, teacher, key="write-only", scopes=["write"])
		resp = await get("classes", key="write-only")
		assert resp.status_code == 403
		error = resp.json()["error"]
		assert error["code"] == "SCOPE_REQUIRED"
		assert error["details"]["required_scope"] == "read"

	async def test_read_only_token_cannot_write(self, client, db_session, teacher, school_class):
		make_token(db_session, teacher, key="read-only", scopes=["read"])
		resp = await client.post(
			"/external-api/assignments",
			json={"class_id": school_class.id, "title": "Quiz"},
			headers={"x-api-key": "read-only"},
		)
		assert resp.status_code == 403
		assert resp.json()["error"]["details"]["required_scope"] == "write"

	async def test_admin_token_reads(self, get, db_session, teacher, school_class):
		make_token(db_session, teacher, key="admin-key", scopes=["admin"])
		resp = await get("classes", key="admin-key")
		assert resp.status_code == 200
		assert resp.json()["data"]["count"] == 1

	async def test_delete_not_allowed(self, client, api_key):
		resp = await client.delete("/external-api/classes", headers={"x-api-key": api_key})
		assert resp.status_code == 405


class TestReads:
	async def test_unknown_resource(self, get):
		resp = await get("grades")
		assert resp.status_code == 404
		assert "students" in resp.json()["error"]["details"]["available_endpoints"]

	async def test_classes_scoped_to_owner(self, get, roster, school_class):
		data = (await get("classes")).json()["data"]
		assert [c["class_code"] for c in data["classes"]] == ["ALG101"]

	async def test_students_scoped_to_owner(self, get, roster, student, db_session, teacher):
		make_token(db_session, teacher, key="reader", scopes=["read"])
		data = (await get("students", key="reader")).json()["data"]
		assert data["count"] == 1
		row = data["students"][0]
		assert row["student_id"] == student.id
		assert row["full_name"] == "Jamie Lee"
		assert row["class"]["name"] == "Algebra 1"

	async def test_students_filtered_by_foreign_class_is_empty(self, get, roster):
		data = (await get("students", class_id=roster["foreign"].id)).json()["data"]
		assert data["students"] == []

	async def test_standards_filter(self, get, db_session):
		db_session.add_all([
			Standard(code="8.EE.A.1", subject="math", grade_band="6-8", domain="Expressions", standard_text="Exponents"),
			Standard(code="3.OA.A.1", subject="math", grade_band="3-5", domain="Operations", standard_text="Products"),
		])
		db_session.commit()
		data = (await get("standards", grade_band="6-8")).json()["data"]
		assert [s["code"] for s in data["standards"]] == ["8.EE.A.1"]

	async def test_mastery_hides_other_teachers_students(self, get, roster, student, db_session):
		standard = Standard(code="8.EE.A.1", subject="math", grade_band="6-8", domain="Expressions", standard_text="Exponents")
		db_session.add(standard)
		db_session.flush()
		db_session.add(StudentStandardMastery(student_id=student.id, standard_id=standard.id, mastery_level="approaching", attempts_count=4, correct_count=3))
		db_session.add(StudentStandardMastery(student_id=roster["other_student"].id, standard_id=standard.id, mastery_level="mastered"))
		db_session.commit()

		data = (await get("mastery")).json()["data"]
		assert data["count"] == 1
		row = data["mastery"][0]
		assert row["student_id"] == student.id
		assert row["standard"]["code"] == "8.EE.A.1"

	async def test_assignments_status_filter(self, get, roster, school_class, db_session):
		due = utcnow() + timedelta(days=3)
		db_session.add_all([
			Assignment(class_id=school_class.id, title="Open", due_at=due),
			Assignment(class_id=school_class.id, title="Closed", due_at=due, status="archived"),
			Assignment(class_id=roster["foreign"].id, title="Foreign", due_at=due),
		])
		db_session.commit()
		data = (await get("assignments", status="active")).json()["data"]
		assert [a["title"] for a in data["assignments"]] == ["Open"]


class TestWrites:
	async def test_create_assignment(self, client, api_key, school_class, db_session):
		resp = await client.post(
			"/external-api/assignments",
			json={"class_id": school_class.id, "title": "Quiz", "questions": [{"prompt": "2+2?", "answer_key": 4}]},
			headers={"x-api-key": api_key},
		)
		assert resp.status_code == 201
		db_session.expire_all()
		assert db_session.get(Assignment, resp.json()["data"]["assignment_id"]).title == "Quiz"

	async def test_create_in_other_teachers_class(self, client, api_key, roster):
		resp = await client.post(
			"/external-api/assignments",
			json={"class_id": roster["foreign"].id, "title": "Quiz"},
			headers={"x-api-key": api_key},
		)
		assert resp.status_code == 404

	async def test_invalid_body(self, client, api_key):
		resp = await client.post("/external-api/assignments", json={"title": "No class"}, headers={"x-api-key": api_key})
		assert resp.status_code == 400
		assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

	async def test_unwritable_resource(self, client, api_key):
		resp = await client.post("/external-api/standards", json={}, headers={"x-api-key": api_key})
		assert resp.status_code == 404
