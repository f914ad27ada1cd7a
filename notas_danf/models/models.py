from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, Enum, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from notas_danf.db import Base


class UserRole(str, enum.Enum):
    admin = "admin"
    viewer = "viewer"


class NotaStatus(str, enum.Enum):
    confirmada = "confirmada"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(Enum(UserRole), default=UserRole.viewer)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    notas = relationship("NotaFiscal", back_populates="user", cascade="all, delete-orphan")
    login_codes = relationship("LoginCode", back_populates="user", cascade="all, delete-orphan")


class NotaFiscal(Base):
    __tablename__ = "notas_fiscais"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    empresa_nome = Column(String, nullable=False)
    chave_acesso = Column(String, nullable=False, index=True)  # somente dígitos
    numero_nota = Column(String, nullable=False)
    data_emissao = Column(Date, nullable=False)
    valor = Column(Float, nullable=False)
    status = Column(Enum(NotaStatus), default=NotaStatus.confirmada, nullable=False)
    imagem_url = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    user = relationship("User", back_populates="notas")


class LoginCode(Base):
    __tablename__ = "login_codes"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String(6), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    single_use = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    user = relationship("User", back_populates="login_codes")
