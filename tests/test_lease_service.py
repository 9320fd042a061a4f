import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from escrutinio.db.database import Base
from escrutinio.models.models import Acta
from escrutinio.services.lease_service import LeaseService
from escrutinio.services.utils import ahora


def test_acquire_free_acta(db, make_acta):
    acta = make_acta()
    antes = ahora()

    hasta = LeaseService.acquire(db, acta.uuid, "u1")

    assert hasta is not None
    assert timedelta(minutes=9) < hasta - antes <= timedelta(minutes=10, seconds=1)
    db.refresh(acta)
    assert acta.bloqueado_por == "u1"
    assert acta.bloqueado_hasta == hasta


def test_only_one_contributor_wins(db, make_acta):
    acta = make_acta()

    resultados = [LeaseService.acquire(db, acta.uuid, f"u{i}") for i in range(5)]

    assert sum(1 for r in resultados if r is not None) == 1
    assert resultados[0] is not None


def test_only_one_contributor_wins_across_threads(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'bloqueos.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with SessionLocal() as db:
        acta = Acta(cne_id="ACTA-00001", jrv_numero=1, tiene_imagen=True, escrutada_en_cne=False)
        db.add(acta)
        db.commit()
        uuid = acta.uuid

    hilos = 8
    barrera = threading.Barrier(hilos)

    def tomar(usuario_id):
        with SessionLocal() as db:
            barrera.wait()
            return LeaseService.acquire(db, uuid, usuario_id)

    try:
        with ThreadPoolExecutor(max_workers=hilos) as pool:
            resultados = list(pool.map(tomar, [f"u{i}" for i in range(hilos)]))

        assert sum(1 for r in resultados if r is not None) == 1
        with SessionLocal() as db:
            ganador = db.query(Acta).filter_by(uuid=uuid).one().bloqueado_por
        assert ganador == f"u{[r is not None for r in resultados].index(True)}"
    finally:
        engine.dispose()


def test_reacquire_by_holder_extends(db, make_acta):
    acta = make_acta()
    primero = LeaseService.acquire(db, acta.uuid, "u1")

    segundo = LeaseService.acquire(db, acta.uuid, "u1")

    assert segundo is not None
    assert segundo >= primero


def test_expired_lease_is_free(db, make_acta, expire_lease):
    acta = make_acta()
    LeaseService.acquire(db, acta.uuid, "u1")
    expire_lease(acta)

    assert LeaseService.acquire(db, acta.uuid, "u2") is not None
    db.refresh(acta)
    assert acta.bloqueado_por == "u2"


def test_extend_only_for_current_holder(db, make_acta, expire_lease):
    acta = make_acta()
    LeaseService.acquire(db, acta.uuid, "u1")

    assert LeaseService.extend(db, acta.uuid, "u2") is None
    assert LeaseService.extend(db, acta.uuid, "u1") is not None

    expire_lease(acta)
    assert LeaseService.extend(db, acta.uuid, "u1") is None


def test_release_scoped_to_holder(db, make_acta):
    acta = make_acta()
    LeaseService.acquire(db, acta.uuid, "u1")

    assert LeaseService.release(db, acta.uuid, "u2") is False
    db.refresh(acta)
    assert acta.bloqueado_por == "u1"

    assert LeaseService.release(db, acta.uuid, "u1") is True
    db.refresh(acta)
    assert acta.bloqueado_por is None
    assert acta.bloqueado_hasta is None


def test_release_without_contributor_is_unconditional(db, make_acta):
    acta = make_acta()
    LeaseService.acquire(db, acta.uuid, "u1")

    assert LeaseService.release(db, acta.uuid) is True
    assert LeaseService.acquire(db, acta.uuid, "u2") is not None


def test_held_by_ignores_expired_leases(db, make_acta, expire_lease):
    acta = make_acta()
    LeaseService.acquire(db, acta.uuid, "u1")
    assert LeaseService.held_by(db, "u1").id == acta.id

    expire_lease(acta)
    assert LeaseService.held_by(db, "u1") is None


def test_needs_refresh_low_water_mark():
    now = ahora()
    assert LeaseService.needs_refresh(now + timedelta(minutes=1), now)
    assert not LeaseService.needs_refresh(now + timedelta(minutes=5), now)
    assert not LeaseService.needs_refresh(None, now)
