import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from notas_danf import __version__
from notas_danf.config import CORS_ORIGINS, UPLOAD_DIR
from notas_danf.db import engine, Base, SessionLocal
from notas_danf.errors import NotaFiscalError
from notas_danf.models import models  # noqa: F401
from notas_danf.models.models import User, UserRole
from notas_danf.routers import auth, notas, dashboard, login_codes
from notas_danf.routers.auth import get_password_hash
from notas_danf.services.storage_service import URL_PREFIX

logging.basicConfig(level=logging.INFO,
                    format="%(asctime)s  %(levelname)s  %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and a default admin if no users exist."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(User).count() == 0:
            db.add(User(
                email="admin@empresa.com",
                hashed_password=get_password_hash("admin123"),
                role=UserRole.admin,
            ))
            db.commit()
            logger.info("Admin criado: admin@empresa.com / admin123")
    finally:
        db.close()
    yield


app = FastAPI(
    title="Leitor de DANF",
    description="API para captura, consulta e download de notas fiscais (NF-e) com OCR",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotaFiscalError)
async def nota_fiscal_error_handler(request: Request, exc: NotaFiscalError):
    cause = exc.__cause__
    logger.warning(f"{request.method} {request.url.path} → {exc.code}: {exc.message}"
                   + (f" (causa: {cause!r})" if cause else ""))
    return JSONResponse(status_code=exc.status_code,
                        content={"success": False, "error": exc.code, "detail": exc.message})


# All API routes live under /api
app.include_router(auth.router, prefix="/api")
app.include_router(login_codes.router, prefix="/api")
app.include_router(notas.router, prefix="/api")
app.include_router(dashboard.router, prefix="/api")

os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount(URL_PREFIX, StaticFiles(directory=UPLOAD_DIR), name="uploads")


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}


def run():
    import uvicorn
    uvicorn.run("notas_danf.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)))


if __name__ == "__main__":
    run()
