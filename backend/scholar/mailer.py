from __future__ import annotations
import html
import logging
from typing import Optional

import httpx

from .errors import AppError, ErrorCode
from .settings import settings


logger = logging.getLogger(__name__)


def _password_changed_html(name: Optional[str]) -> str:
	who = html.escape(name or "there")
	return (
		"<html><body style=\"font-family: sans-serif\">"
		f"<h2>Hi {who},</h2>"
		"<p>The password on your NYCologic Scholar account was just changed.</p>"
		"<p>If you made this change, no action is needed. If you did not, reset your "
		"password right away and let your teacher know.</p>"
		"</body></html>"
	)


async def send_email(to_email: str, to_name: Optional[str], subject: str, html_content: str, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
	if not settings.brevo_api_key:
		raise AppError(ErrorCode.SERVICE_UNAVAILABLE, "BREVO_API_KEY not configured")
	payload = {
		"sender": {"name": settings.mail_sender_name, "email": settings.mail_sender_email},
		"to": [{"email": to_email, "name": to_name or "User"}],
		"subject": subject,
		"htmlContent": html_content,
	}
	headers = {"api-key": settings.brevo_api_key, "Content-Type": "application/json", "accept": "application/json"}
	async with httpx.AsyncClient(transport=transport, timeout=10) as client:
		try:
			r = await client.post(settings.brevo_api_url, headers=headers, json=payload)
		except httpx.RequestError as err:
			raise AppError(ErrorCode.EXTERNAL_SERVICE_ERROR, f"Brevo API unreachable: {err}") from err
	if r.status_code >= 300:
		logger.error("Brevo API error %s: %s", r.status_code, r.text[:500])
		raise AppError(ErrorCode.EXTERNAL_SERVICE_ERROR, f"Brevo API error: {r.status_code}", {"status": r.status_code})
	logger.info("Email '%s' sent to %s", subject, to_email)


async def send_password_changed_email(email: str, name: Optional[str] = None) -> None:
	await send_email(email, name, "Your password has been changed", _password_changed_html(name))
