from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func, true
from notas_danf.db import get_db
from notas_danf.models.models import NotaFiscal, User, UserRole
from notas_danf.schemas.schemas import DashboardStats
from notas_danf.services.receipt_service import format_brl
from notas_danf.routers.auth import get_current_user

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
async def get_stats(db: Session = Depends(get_db),
                    current_user: User = Depends(get_current_user)):
    mine = NotaFiscal.user_id == current_user.id if current_user.role != UserRole.admin else true()

    total_notas = db.query(func.count(NotaFiscal.id)).filter(mine).scalar() or 0
    valor_total = db.query(func.sum(NotaFiscal.valor)).filter(mine).scalar() or 0.0
    total_empresas = db.query(func.count(func.distinct(NotaFiscal.empresa_nome))).filter(mine).scalar() or 0

    return DashboardStats(
        total_notas=total_notas, valor_total=valor_total,
        valor_total_formatado=format_brl(valor_total),
        total_empresas=total_empresas,
    )
