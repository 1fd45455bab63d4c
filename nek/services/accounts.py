import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nek.core.config import PASSWORD_RESET_TTL_MINUTES
from nek.core.errors import BusinessRuleError, ConflictError
from nek.core.security import generate_reset_token, hash_password, verify_password
from nek.db.models import PasswordResetToken, User
from nek.models.schemas import UserCreate
from nek.services.notifications import EmailDispatcher, password_reset_email, welcome_email

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists for that email, a password reset link has been sent."


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str):
    return db.query(User).filter(User.email == normalize_email(email)).first()


def register_user(db: Session, payload: UserCreate, dispatcher: EmailDispatcher) -> User:
    email = normalize_email(payload.email)
    if get_user_by_email(db, email):
        raise ConflictError("User with this email already exists")

    user = User(
        email=email,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        password=hash_password(payload.password),
        role="user",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this email already exists")
    db.refresh(user)

    dispatcher.enqueue(welcome_email(user.email, user.first_name))
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return user


def request_password_reset(db: Session, email: str, dispatcher: EmailDispatcher) -> dict:
    """Issue a fresh reset token. The response never reveals whether the account exists."""
    email = normalize_email(email)
    user = get_user_by_email(db, email)
    if not user:
        logger.info("Password reset requested for unknown email")
        return {"message": RESET_REQUESTED_MESSAGE}

    token = generate_reset_token()
    try:
        # one active token per email
        db.query(PasswordResetToken).filter(PasswordResetToken.email == email).delete(synchronize_session=False)
        db.add(PasswordResetToken(
            email=email,
            token=token,
            expires=datetime.now(timezone.utc) + timedelta(minutes=PASSWORD_RESET_TTL_MINUTES),
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    dispatcher.enqueue(password_reset_email(email, token))
    return {"message": RESET_REQUESTED_MESSAGE}


def _live_token(db: Session, email: str, token: str):
    record = (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.email == normalize_email(email), PasswordResetToken.token == token)
        .first()
    )
    if not record:
        return None
    expires = record.expires
    if expires.tzinfo is None:
        # SQLite hands back naive datetimes
        expires = expires.replace(tzinfo=timezone.utc)
    if expires < datetime.now(timezone.utc):
        return None
    return record


def validate_reset_token(db: Session, email: str, token: str) -> bool:
    return _live_token(db, email, token) is not None


def confirm_password_reset(db: Session, email: str, token: str, password: str):
    record = _live_token(db, email, token)
    if not record:
        raise BusinessRuleError("Invalid or expired token")

    user = get_user_by_email(db, record.email)
    if not user:
        raise BusinessRuleError("Invalid or expired token")

    try:
        user.password = hash_password(password)
        db.query(PasswordResetToken).filter(PasswordResetToken.email == record.email).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Password reset completed for user %s", user.id)
