from pydantic import BaseModel, EmailStr, computed_field
from typing import Optional
from datetime import date, datetime
from notas_danf.models.models import UserRole, NotaStatus
from notas_danf.services.receipt_service import format_brl, is_chave_valida


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    role: UserRole = UserRole.viewer


class UserOut(BaseModel):
    id: int
    email: str
    role: UserRole
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str


class CodeLogin(BaseModel):
    code: str


class LoginCodeOut(BaseModel):
    code: str
    expires_at: datetime
    expires_in: int


class NotaExtraida(BaseModel):
    empresa_nome: str
    chave_acesso: str
    numero_nota: str
    data_emissao: date
    valor: float

    @computed_field
    @property
    def chave_acesso_valida(self) -> bool:
        return is_chave_valida(self.chave_acesso)


class ExtractionResponse(BaseModel):
    success: bool = True
    data: NotaExtraida
    imagem_url: Optional[str] = None


class NotaFiscalConfirm(BaseModel):
    # Raw values from the review form; normalised in receipt_service
    empresa_nome: Optional[str] = None
    chave_acesso: Optional[str] = None
    numero_nota: Optional[str] = None
    data_emissao: Optional[str] = None
    valor: Optional[float | str] = None
    imagem_url: Optional[str] = None


class NotaFiscalOut(BaseModel):
    id: int
    empresa_nome: str
    chave_acesso: str
    numero_nota: str
    data_emissao: date
    valor: float
    status: NotaStatus
    imagem_url: Optional[str] = None
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True

    @computed_field
    @property
    def valor_formatado(self) -> str:
        return format_brl(self.valor)

    @computed_field
    @property
    def chave_acesso_valida(self) -> bool:
        return is_chave_valida(self.chave_acesso)


class OcrProgressOut(BaseModel):
    status: str
    progress: int
    class Config:
        from_attributes = True


class DashboardStats(BaseModel):
    total_notas: int
    valor_total: float
    valor_total_formatado: str
    total_empresas: int
