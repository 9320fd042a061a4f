from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from escrutinio.core.config import settings
from escrutinio.core.init_logros import init_logros
from escrutinio.db.database import Base, get_db
from escrutinio.models.models import Acta, EstadisticaUsuario
from escrutinio.services.acta_service import ActaService
from escrutinio.services.lease_service import LeaseService
from escrutinio.services.utils import ahora

OFICIALES = (100, 80, 60, 10, 5, 3, 2)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def logros(db):
    init_logros(db)


@pytest.fixture
def make_acta(db):
    """Crear un acta libre; por defecto con imagen y sin datos oficiales."""
    contador = {"n": 0}

    def _make(**kwargs):
        contador["n"] += 1
        datos = {
            "cne_id": f"ACTA-{contador['n']:05d}",
            "jrv_numero": contador["n"],
            "tiene_imagen": True,
            "escrutada_en_cne": False,
        }
        datos.update(kwargs)
        acta = Acta(**datos)
        db.add(acta)
        db.commit()
        db.refresh(acta)
        return acta

    return _make


@pytest.fixture
def digitar(db):
    """Digitalizar un acta a través del flujo real (bloqueo + envío)."""

    def _digitar(acta, usuario="digitador", valores=OFICIALES):
        assert LeaseService.acquire(db, acta.uuid, usuario) is not None
        envio = ActaService.submit_digitization(db, acta.uuid, usuario, valores)
        assert envio.ok, envio.resultado
        db.refresh(acta)
        return envio

    return _digitar


@pytest.fixture
def validar(db):
    """Tomar el bloqueo y validar: confirmar o enviar valores."""

    def _validar(acta, usuario, valores=None, confirmar=None):
        if confirmar is None:
            confirmar = valores is None
        assert LeaseService.acquire(db, acta.uuid, usuario) is not None
        envio = ActaService.submit_validation(db, acta.uuid, usuario, confirmar, valores)
        db.refresh(acta)
        return envio

    return _validar


@pytest.fixture
def stats(db):
    def _stats(usuario_id):
        db.expire_all()
        return db.get(EstadisticaUsuario, usuario_id)

    return _stats


@pytest.fixture
def expire_lease(db):
    def _expire(acta):
        db.execute(
            update(Acta)
            .where(Acta.id == acta.id)
            .values(bloqueado_hasta=ahora() - timedelta(seconds=1))
        )
        db.commit()
        db.refresh(acta)

    return _expire


# =========================================================
# API
# =========================================================

def make_token(usuario_id: str, **claims) -> str:
    payload = {
        "sub": usuario_id,
        "aud": settings.JWT_AUDIENCE,
        "exp": ahora() + timedelta(hours=1),
    }
    payload.update(claims)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth():
    def _auth(usuario_id: str, **claims):
        return {"Authorization": f"Bearer {make_token(usuario_id, **claims)}"}

    return _auth


@pytest.fixture
def client(db):
    from main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    # Sin context manager: el lifespan inicializaría la base de datos real
    yield TestClient(app)
    app.dependency_overrides.clear()
