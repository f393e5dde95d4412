"""Actor identity: school/user registration and HMAC bearer tokens.

Full authentication (sessions, password reset, SSO) belongs to the hosting
platform; this only establishes who is calling.
"""

import base64
import hashlib
import hmac
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Form, Header
from sqlalchemy.orm import Session

from quranakh.config import get_settings
from quranakh.db import get_db
from quranakh.errors import Forbidden, Unauthorized
from quranakh.models import User, UserRole
from quranakh.schemas.users import SchoolRegister, Token, UserCreate, UserResponse
from quranakh.services.people import PeopleService, get_user_by_username

router = APIRouter()
people = PeopleService()


# === token helpers ===

def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    """PBKDF2 hash stored as ``<salt hex>$<digest hex>``."""
    if salt is None:
        salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, 100_000)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    salt_hex, _, _ = hashed_password.partition("$")
    expected = hash_password(plain_password, bytes.fromhex(salt_hex))
    return hmac.compare_digest(expected, hashed_password)


def create_token(user_id: int, role: str) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.token_expire_hours)
    payload = {"sub": user_id, "role": role, "exp": expire.isoformat()}
    payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    signature = hmac.new(
        settings.secret_key.encode(), payload_b64.encode(), hashlib.sha256
    ).hexdigest()
    return f"{payload_b64}.{signature}"


def decode_token(token: str) -> Optional[dict]:
    """Payload of a valid, unexpired token, else ``None``."""
    parts = token.split(".")
    if len(parts) != 2:
        return None
    payload_b64, signature = parts
    expected_sig = hmac.new(
        get_settings().secret_key.encode(), payload_b64.encode(), hashlib.sha256
    ).hexdigest()
    if not hmac.compare_digest(signature, expected_sig):
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64).decode())
        exp = datetime.fromisoformat(payload["exp"])
    except (ValueError, KeyError, TypeError):
        return None
    if datetime.now(timezone.utc) > exp:
        return None
    return payload


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized()
    payload = decode_token(authorization[7:])
    if not payload or payload.get("sub") is None:
        raise Unauthorized()
    user = db.get(User, payload["sub"])
    if user is None:
        raise Unauthorized()
    return user


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.role.is_staff:
        raise Forbidden("Teacher, admin or owner role required")
    return current_user


def require_school_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in (UserRole.OWNER, UserRole.ADMIN):
        raise Forbidden("Owner or admin role required")
    return current_user


def require_parent(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.PARENT:
        raise Forbidden("Parent role required")
    return current_user


# === endpoints ===

@router.post("/register-school", response_model=UserResponse)
async def register_school(data: SchoolRegister, db: Session = Depends(get_db)):
    """Create a school and its owner account."""
    return people.register_school(
        db,
        school_name=data.school_name,
        username=data.username,
        password_hash=hash_password(data.password),
        name=data.name,
    )


@router.post("/register", response_model=UserResponse)
async def register(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_school_admin),
):
    """Add a teacher, student, parent or admin to the caller's school."""
    return people.register_user(
        db,
        school_id=current_user.school_id,
        username=user_data.username,
        password_hash=hash_password(user_data.password),
        name=user_data.name,
        role=user_data.role,
    )


@router.post("/login", response_model=Token)
async def login(
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    user = get_user_by_username(db, username)
    if not user or not verify_password(password, user.password_hash):
        raise Unauthorized("Incorrect username or password")
    return {"access_token": create_token(user.id, user.role.value), "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    return current_user
