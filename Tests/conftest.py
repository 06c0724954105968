import os
import shutil
import tempfile
from pathlib import Path

import pytest

# Debe configurarse antes de importar la app: el engine y el mount de
# /uploads se crean al importar.
_UPLOADS = Path(tempfile.mkdtemp(prefix="ciberzone-uploads-"))
os.environ.pop("DEFAULT_CONNECTION", None)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOADS_DIR"] = str(_UPLOADS)
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("OTEL_EXPORTER_OTLP_ENDPOINT", None)

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from services.ciberzone.app.db import get_db, make_engine, migrate  # noqa: E402
from services.ciberzone.app.main import app  # noqa: E402
from services.ciberzone.app.models import Usuario, Rol  # noqa: E402
from services.ciberzone.app.security import create_access_token, hash_password  # noqa: E402


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    migrate(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def uploads_dir():
    for child in _UPLOADS.iterdir():
        if child.is_dir():
            shutil.rmtree(child)
        else:
            child.unlink()
    return _UPLOADS


@pytest.fixture
def client(session_factory, uploads_dir):
    def _override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Crea una cuenta y devuelve (id, headers con bearer token)."""
    def _make(username: str, password: str = "secreta", rol: Rol = Rol.user, activo: bool = True):
        s = session_factory()
        try:
            user = Usuario(username=username, password_hash=hash_password(password), rol=rol.value, activo=activo)
            s.add(user)
            s.commit()
            s.refresh(user)
            token = create_access_token(user)
            return user.id, {"Authorization": f"Bearer {token}"}
        finally:
            s.close()
    return _make


@pytest.fixture
def admin_headers(make_user):
    _, headers = make_user("jefe", "Admin2025#", rol=Rol.admin)
    return headers
