"""Tests for the /auth router: login, register, me, password change."""

import httpx
import pytest

from scholar import mailer
from scholar.errors import AppError
from scholar.models import Enrollment, PendingEnrollment, StudentProfile
from scholar.settings import settings

from .conftest import TEACHER_PASSWORD


async def login(client, email, password):
	return await client.post("/auth/token", data={"username": email, "password": password})


class TestLogin:
	async def test_login_and_me(self, client, teacher):
		resp = await login(client, "MS.RIVERA@school.org", TEACHER_PASSWORD)
		assert resp.status_code == 200
		token = resp.json()["access_token"]
		me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
		assert me.status_code == 200
		assert me.json() == {"id": teacher.id, "email": teacher.email, "full_name": "Ana Rivera", "role": "teacher"}

	async def test_wrong_password(self, client, teacher):
		resp = await login(client, teacher.email, "nope-nope-nope")
		assert resp.status_code == 401
		assert resp.json()["detail"] == "Incorrect email or password"

	async def test_me_rejects_garbage_token(self, client):
		resp = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
		assert resp.status_code == 401


class TestRegister:
	async def test_student_picks_up_pending_enrollments(self, client, school_class, db_session):
		db_session.add(PendingEnrollment(class_id=school_class.id, email="new.kid@students.org", teacher_id=school_class.teacher_id))
		db_session.commit()

		resp = await client.post("/auth/register", json={
			"email": "New.Kid@Students.org",
			"password": "long-enough-pw",
			"full_name": "New Kid",
		})
		assert resp.status_code == 201
		body = resp.json()
		assert body["enrolled_classes"] == 1

		db_session.expire_all()
		assert db_session.query(Enrollment).filter_by(class_id=school_class.id, student_id=body["user_id"]).count() == 1
		assert db_session.query(PendingEnrollment).one().processed is True
		assert db_session.query(StudentProfile).filter_by(user_id=body["user_id"]).count() == 1

	async def test_teacher_gets_no_student_profile(self, client, db_session):
		resp = await client.post("/auth/register", json={
			"email": "coach@school.org",
			"password": "long-enough-pw",
			"full_name": "Coach",
			"role": "teacher",
		})
		assert resp.status_code == 201
		db_session.expire_all()
		assert db_session.query(StudentProfile).count() == 0

	async def test_duplicate_email_ignores_case(self, client, student):
		resp = await client.post("/auth/register", json={
			"email": "jamie.lee@students.org",
			"password": "long-enough-pw",
			"full_name": "Imposter",
		})
		assert resp.status_code == 409

	@pytest.mark.parametrize("body", [
		{"email": "no-at-sign", "password": "long-enough-pw", "full_name": "X"},
		{"email": "a@b.org", "password": "short", "full_name": "X"},
		{"email": "a@b.org", "password": "long-enough-pw", "full_name": "   "},
	])
	async def test_rejects_bad_input(self, client, body):
		resp = await client.post("/auth/register", json=body)
		assert resp.status_code == 400


class TestPasswordChange:
	async def test_change_without_mail_provider(self, client, teacher, auth_headers, monkeypatch):
		monkeypatch.setattr(settings, "brevo_api_key", None)
		resp = await client.post(
			"/auth/password",
			json={"current_password": TEACHER_PASSWORD, "new_password": "brand-new-secret"},
			headers=auth_headers(teacher),
		)
		assert resp.status_code == 200
		assert resp.json() == {"ok": True, "email_sent": False}
		assert (await login(client, teacher.email, "brand-new-secret")).status_code == 200
		assert (await login(client, teacher.email, TEACHER_PASSWORD)).status_code == 401

	async def test_confirmation_email_sent(self, client, teacher, auth_headers, monkeypatch):
		sent = []

		async def fake_send(to_email, to_name, subject, html_content, *, transport=None):
			sent.append((to_email, to_name, subject))

		monkeypatch.setattr(mailer, "send_email", fake_send)
		resp = await client.post(
			"/auth/password",
			json={"current_password": TEACHER_PASSWORD, "new_password": "brand-new-secret"},
			headers=auth_headers(teacher),
		)
		assert resp.json()["email_sent"] is True
		assert sent == [(teacher.email, "Ana Rivera", "Your password has been changed")]

	async def test_wrong_current_password(self, client, teacher, auth_headers):
		resp = await client.post(
			"/auth/password",
			json={"current_password": "guess-guess", "new_password": "brand-new-secret"},
			headers=auth_headers(teacher),
		)
		assert resp.status_code == 400


class TestMailer:
	async def test_posts_to_brevo(self, monkeypatch):
		seen = []

		def handler(request):
			seen.append(request)
			return httpx.Response(201, json={"messageId": "m-1"})

		monkeypatch.setattr(settings, "brevo_api_key", "brevo-test-key")
		await mailer.send_email("kid@students.org", None, "Hi", "<p>hi</p>", transport=httpx.MockTransport(handler))
		assert seen[0].headers["api-key"] == "brevo-test-key"
		assert b'"kid@students.org"' in seen[0].content

	async def test_provider_error(self, monkeypatch):
		monkeypatch.setattr(settings, "brevo_api_key", "brevo-test-key")
		transport = httpx.MockTransport(lambda request: httpx.Response(400, text="bad sender"))
		with pytest.raises(AppError) as exc:
			await mailer.send_email("kid@students.org", "Kid", "Hi", "<p>hi</p>", transport=transport)
		assert exc.value.status == 502
