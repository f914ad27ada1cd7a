from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from notas_danf.db import get_db
from notas_danf.models.models import User
from notas_danf.schemas.schemas import LoginCodeOut
from notas_danf.services.login_code_service import active_code, generate_code, seconds_left
from notas_danf.routers.auth import get_current_user

router = APIRouter(prefix="/login-codes", tags=["login-codes"])


def _out(login_code) -> LoginCodeOut:
    return LoginCodeOut(code=login_code.code, expires_at=login_code.expires_at,
                        expires_in=seconds_left(login_code))


@router.post("", response_model=LoginCodeOut)
async def create_login_code(db: Session = Depends(get_db),
                            current_user: User = Depends(get_current_user)):
    """New pairing code for the mobile app; any previous code stops working."""
    return _out(generate_code(db, current_user))


@router.get("/active", response_model=LoginCodeOut)
async def get_active_code(db: Session = Depends(get_db),
                          current_user: User = Depends(get_current_user)):
    login_code = active_code(db, current_user)
    if not login_code:
        raise HTTPException(status_code=404, detail="Nenhum código ativo")
    return _out(login_code)
