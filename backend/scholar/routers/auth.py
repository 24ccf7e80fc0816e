from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from pydantic import BaseModel
import logging

from sqlalchemy.orm import Session
from ..credentials import create_access_token, hash_password, validate_bearer_token, verify_password
from ..db import get_db
from ..effects import run_best_effort
from ..enrollment import process_pending_enrollments
from ..errors import AppError
from ..mailer import send_password_changed_email
from ..models import AuthUser, Profile, StudentProfile, UserRole
from ..students import find_user_by_email

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	id: str
	email: str
	full_name: Optional[str] = None
	role: Optional[str] = None


def authenticate_user(db: Session, email: str, password: str) -> Optional[AuthUser]:
	user_row = find_user_by_email(db, email)
	if user_row and verify_password(password, user_row.password_hash):
		return user_row
	return None


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	return Token(access_token=create_access_token(user.id, user.email))


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> AuthUser:
	try:
		return validate_bearer_token(db, token)
	except AppError as err:
		raise HTTPException(status_code=401, detail=err.message)


@router.get("/me", response_model=User)
async def me(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db)):
	profile = db.get(Profile, user.id)
	role = db.query(UserRole).filter(UserRole.user_id == user.id).first()
	return User(
		id=user.id,
		email=user.email,
		full_name=profile.full_name if profile else None,
		role=role.role if role else None,
	)


class RegisterRequest(BaseModel):
	email: str
	password: str
	full_name: str
	role: Literal["student", "teacher", "parent"] = "student"
	preferred_language: Optional[str] = None


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	email = (req.email or "").strip().lower()
	password = req.password or ""
	full_name = (req.full_name or "").strip()
	if not email or "@" not in email:
		raise HTTPException(status_code=400, detail="a valid email is required")
	if len(password) < 8:
		raise HTTPException(status_code=400, detail="password must be at least 8 characters")
	if not full_name:
		raise HTTPException(status_code=400, detail="full_name is required")
	if find_user_by_email(db, email):
		raise HTTPException(status_code=409, detail="email already registered")

	row = AuthUser(email=email, password_hash=hash_password(password))
	db.add(row)
	db.flush()
	db.add(Profile(id=row.id, full_name=full_name, preferred_language=req.preferred_language))
	db.add(UserRole(user_id=row.id, role=req.role))
	if req.role == "student":
		db.add(StudentProfile(user_id=row.id))
	db.commit()

	enrolled = process_pending_enrollments(db, row) if req.role == "student" else 0
	return {"ok": True, "user_id": row.id, "enrolled_classes": enrolled}


class ChangePasswordRequest(BaseModel):
	current_password: str
	new_password: str


@router.post("/password")
async def change_password(
	req: ChangePasswordRequest,
	user: AuthUser = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	if not verify_password(req.current_password, user.password_hash):
		raise HTTPException(status_code=400, detail="current password is incorrect")
	if len(req.new_password) < 8:
		raise HTTPException(status_code=400, detail="password must be at least 8 characters")
	user.password_hash = hash_password(req.new_password)
	db.commit()
	profile = db.get(Profile, user.id)
	# Password is already changed; the email is a courtesy
	sent = await run_best_effort(
		"password changed email",
		send_password_changed_email,
		user.email,
		profile.full_name if profile else None,
	)
	return {"ok": True, "email_sent": sent}
