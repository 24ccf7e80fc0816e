"""Unit tests for class codes, enrollment and roster reconciliation."""

from scholar.enrollment import (
	RosterTally,
	create_class,
	enroll_student,
	process_pending_enrollments,
	reconcile_roster,
	unique_class_code,
	upsert_pending_enrollment,
)
from scholar.models import Enrollment, PendingEnrollment

from .conftest import make_user


class TestClassCodes:
	def test_preferred_code_used_when_free(self):
		assert unique_class_code({"AAA111"}, "BBB222") == "BBB222"

	def test_taken_code_regenerated(self):
		code = unique_class_code({"AAA111"}, "AAA111")
		assert code != "AAA111"
		assert len(code) == 6
		assert code.isalnum() and code.upper() == code

	def test_create_class_reserves_code(self, db_session, teacher):
		codes = set()
		first = create_class(db_session, teacher.id, "Period 1", class_code="P1CODE", existing_codes=codes)
		second = create_class(db_session, teacher.id, "Period 2", class_code="P1CODE", existing_codes=codes)
		assert first.class_code == "P1CODE"
		assert second.class_code != "P1CODE"
		assert codes == {first.class_code, second.class_code}


class TestEnrollment:
	def test_duplicate_enroll_is_noop(self, db_session, school_class, student):
		assert enroll_student(db_session, school_class.id, student.id) is True
		assert enroll_student(db_session, school_class.id, student.id) is False
		assert db_session.query(Enrollment).count() == 1

	def test_pending_upsert_reopens_processed_row(self, db_session, school_class, teacher):
		row = upsert_pending_enrollment(db_session, school_class.id, " Kid@Students.org ", teacher.id, "Kid")
		row.processed = True
		db_session.commit()
		again = upsert_pending_enrollment(db_session, school_class.id, "kid@students.org", teacher.id)
		assert again.id == row.id
		assert again.processed is False
		assert again.student_name == "Kid"

	def test_process_pending_marks_rows(self, db_session, school_class, teacher):
		upsert_pending_enrollment(db_session, school_class.id, "late@students.org", teacher.id)
		user = make_user(db_session, "late@students.org", "student")
		assert process_pending_enrollments(db_session, user) == 1
		assert db_session.query(PendingEnrollment).one().processed is True
		assert process_pending_enrollments(db_session, user) == 0


class TestReconcileRoster:
	def test_tally(self, db_session, school_class, teacher, student):
		roster = [
			{"email": "jamie.lee@students.org", "user_id": student.id},
			{"email": "jamie.lee@students.org", "user_id": student.id},
			{"email": "stale@students.org", "user_id": "no-such-profile"},
			{"email": "new@students.org"},
			{"name": "missing email"},
		]
		tally = reconcile_roster(db_session, school_class.id, teacher.id, roster)
		assert tally == RosterTally(enrolled=1, pending=2)
		emails = sorted(r.email for r in db_session.query(PendingEnrollment))
		assert emails == ["new@students.org", "stale@students.org"]

	def test_tallies_add(self):
		assert RosterTally(1, 2) + RosterTally(3, 4) == RosterTally(4, 6)
