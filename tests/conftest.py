"""
Shared pytest fixtures: in-memory SQLite, FastAPI TestClient and fakes for
the external services (OCR engine, AI vision, Meu Danfe).
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="notas_danf_uploads_")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from notas_danf.db import Base, get_db  # noqa: E402
from notas_danf.deps import (get_danf_service, get_deployment_packager,  # noqa: E402
                             get_extraction_service, get_ocr_service, get_photo_storage)
from notas_danf.main import app  # noqa: E402
from notas_danf.models.models import User, UserRole  # noqa: E402
from notas_danf.services.packager import SidecarTextPackager  # noqa: E402
from notas_danf.services.storage_service import PhotoStorage  # noqa: E402
from tests.fakes import FakeDanf, FakeExtraction, FakeOcr  # noqa: E402

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


def _user(db, email, role):
    user = User(email=email, hashed_password="x", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def viewer(db):
    return _user(db, "viewer@empresa.com", UserRole.viewer)


@pytest.fixture()
def other_viewer(db):
    return _user(db, "outro@empresa.com", UserRole.viewer)


@pytest.fixture()
def admin(db):
    return _user(db, "admin@empresa.com", UserRole.admin)


@pytest.fixture()
def fakes(tmp_path):
    return {
        "ocr": FakeOcr(),
        "danf": FakeDanf(),
        "extraction": FakeExtraction(),
        "storage": PhotoStorage(str(tmp_path)),
    }


@pytest.fixture()
def client(db, fakes):
    def _override():
        yield db

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_ocr_service] = lambda: fakes["ocr"]
    app.dependency_overrides[get_danf_service] = lambda: fakes["danf"]
    app.dependency_overrides[get_extraction_service] = lambda: fakes["extraction"]
    app.dependency_overrides[get_photo_storage] = lambda: fakes["storage"]
    app.dependency_overrides[get_deployment_packager] = SidecarTextPackager
    yield TestClient(app)
    app.dependency_overrides.clear()
