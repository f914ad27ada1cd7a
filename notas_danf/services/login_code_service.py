import logging
import secrets
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from notas_danf.config import LOGIN_CODE_EXPIRE_MINUTES
from notas_danf.errors import AuthError
from notas_danf.models.models import LoginCode, User

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; codes are always stored in UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _random_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def generate_code(db: Session, user: User,
                  expire_minutes: int = LOGIN_CODE_EXPIRE_MINUTES) -> LoginCode:
    """
    Replace any code of `user` with a fresh 6-digit one.

    Old codes of the user and every expired code are deleted in the same
    transaction, so the user ends up with exactly one row.
    """
    now = _now()
    db.query(LoginCode).filter(LoginCode.user_id == user.id).delete(synchronize_session=False)
    db.query(LoginCode).filter(LoginCode.expires_at < now).delete(synchronize_session=False)

    code = _random_code()
    while db.query(LoginCode).filter(LoginCode.code == code).first():
        code = _random_code()

    login_code = LoginCode(user_id=user.id, code=code,
                           expires_at=now + timedelta(minutes=expire_minutes),
                           single_use=True)
    db.add(login_code)
    db.commit()
    db.refresh(login_code)
    logger.info(f"Login code generated for user {user.id}, expires in {expire_minutes} min")
    return login_code


def active_code(db: Session, user: User) -> LoginCode | None:
    login_code = db.query(LoginCode).filter(LoginCode.user_id == user.id).first()
    if login_code and _aware(login_code.expires_at) > _now():
        return login_code
    return None


def seconds_left(login_code: LoginCode) -> int:
    return max(0, int((_aware(login_code.expires_at) - _now()).total_seconds()))


def redeem_code(db: Session, code: str) -> User:
    """
    Consume a pairing code and return its user.

    Raises AuthError('invalid_code') when the code does not exist and
    AuthError('expired_code') when it has expired; expired codes are removed.
    """
    login_code = db.query(LoginCode).filter(LoginCode.code == code.strip()).first()
    if not login_code:
        raise AuthError("Código inválido ou não encontrado.", code="invalid_code")

    user = login_code.user
    if _aware(login_code.expires_at) <= _now():
        db.delete(login_code)
        db.commit()
        logger.info(f"Expired login code rejected for user {user.id}")
        raise AuthError("Código expirado. Gere um novo no seu computador.", code="expired_code")

    if login_code.single_use:
        db.delete(login_code)
    db.commit()
    logger.info(f"Login code redeemed by user {user.id}")
    return user
