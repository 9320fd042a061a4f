from escrutinio.core.config import settings
from escrutinio.enums.enums import (
    EstadoActa, EstadoUsuario, ModoVerificacion, ResultadoOperacion, TipoDiscrepancia
)
from escrutinio.models.models import Discrepancia, EstadisticaUsuario
from escrutinio.services.assignment_service import AssignmentService
from escrutinio.services.lease_service import LeaseService

OFICIALES = (100, 80, 60, 10, 5, 3, 2)


def test_digitize_picks_only_undigitized_unofficial(db, make_acta, digitar):
    make_acta(escrutada_en_cne=True)
    ya_digitada = make_acta()
    digitar(ya_digitada, "otro")
    libre = make_acta()

    asignacion = AssignmentService.assign(db, "u1", ModoVerificacion.digitalizar)

    assert asignacion.resultado == ResultadoOperacion.asignada
    assert asignacion.acta.id == libre.id
    assert asignacion.acta.bloqueado_por == "u1"


def test_digitize_skips_acta_leased_by_someone_else(db, make_acta):
    acta = make_acta()
    LeaseService.acquire(db, acta.uuid, "otro")

    asignacion = AssignmentService.assign(db, "u1", ModoVerificacion.digitalizar)

    assert asignacion.resultado == ResultadoOperacion.sin_actas


def test_validate_exclusions(db, make_acta, digitar, validar):
    propia = make_acta()
    digitar(propia, "u1")

    validada = make_acta()
    digitar(validada, "d")
    validar(validada, "u1")

    reportada = make_acta()
    digitar(reportada, "d")
    db.add(Discrepancia(acta_id=reportada.id, usuario_id="u1", tipo=TipoDiscrepancia.ilegible))
    db.commit()

    make_acta(escrutada_en_cne=True, tiene_imagen=False)
    make_acta(escrutada_en_cne=True, estado=EstadoActa.bajo_revision)
    make_acta(escrutada_en_cne=True, estado=EstadoActa.con_discrepancia)
    make_acta(escrutada_en_cne=True, cantidad_validaciones=3)

    asignacion = AssignmentService.assign(db, "u1", ModoVerificacion.validar)
    assert asignacion.resultado == ResultadoOperacion.sin_actas

    elegible = make_acta(escrutada_en_cne=True)
    asignacion = AssignmentService.assign(db, "u1", ModoVerificacion.validar)
    assert asignacion.resultado == ResultadoOperacion.asignada
    assert asignacion.acta.id == elegible.id
    assert asignacion.modo == ModoVerificacion.validar


def test_pending_lease_short_circuits(db, make_acta):
    make_acta()
    make_acta()
    AssignmentService.assign(db, "u1", ModoVerificacion.digitalizar)
    tomada = LeaseService.held_by(db, "u1")

    otra_vez = AssignmentService.assign(db, "u1", ModoVerificacion.validar)

    assert otra_vez.resultado == ResultadoOperacion.pendiente
    assert otra_vez.acta.id == tomada.id
    assert otra_vez.modo == ModoVerificacion.digitalizar


def test_banned_contributor_gets_no_work(db, make_acta):
    make_acta()
    db.add(EstadisticaUsuario(usuario_id="malo", estado=EstadoUsuario.baneado))
    db.commit()

    asignacion = AssignmentService.assign(db, "malo", ModoVerificacion.digitalizar)

    assert asignacion.resultado == ResultadoOperacion.baneado
    assert LeaseService.held_by(db, "malo") is None


def test_maintenance_pauses_new_assignments_but_returns_pending(db, make_acta, monkeypatch):
    acta = make_acta()
    LeaseService.acquire(db, acta.uuid, "u1")
    make_acta()
    monkeypatch.setattr(settings, "ACTAS_MAINTENANCE", True)

    assert AssignmentService.assign(db, "u2", ModoVerificacion.digitalizar).resultado == ResultadoOperacion.mantenimiento
    pendiente = AssignmentService.assign(db, "u1", ModoVerificacion.digitalizar)
    assert pendiente.resultado == ResultadoOperacion.pendiente
    assert pendiente.acta.id == acta.id


def test_lost_race_retries_selection(db, make_acta, monkeypatch):
    make_acta()
    original = LeaseService.acquire
    llamadas = []

    def acquire_pierde_primero(db_, acta_uuid, usuario_id):
        llamadas.append(acta_uuid)
        if len(llamadas) == 1:
            return None
        return original(db_, acta_uuid, usuario_id)

    monkeypatch.setattr(LeaseService, "acquire", staticmethod(acquire_pierde_primero))

    asignacion = AssignmentService.assign(db, "u1", ModoVerificacion.digitalizar)

    assert asignacion.resultado == ResultadoOperacion.asignada
    assert len(llamadas) == 2


def test_gives_up_after_max_attempts(db, make_acta, monkeypatch):
    make_acta()
    llamadas = []

    def acquire_siempre_pierde(db_, acta_uuid, usuario_id):
        llamadas.append(acta_uuid)
        return None

    monkeypatch.setattr(LeaseService, "acquire", staticmethod(acquire_siempre_pierde))

    asignacion = AssignmentService.assign(db, "u1", ModoVerificacion.digitalizar)

    assert asignacion.resultado == ResultadoOperacion.sin_actas
    assert len(llamadas) == settings.ASSIGNMENT_MAX_ATTEMPTS


def test_validate_uses_official_values_when_never_digitized(db, make_acta):
    from escrutinio.db.crud import crud

    acta = make_acta(escrutada_en_cne=True, **crud.columnas_votos("_oficial", OFICIALES))

    asignacion = AssignmentService.assign(db, "u1", ModoVerificacion.validar)

    assert asignacion.acta.id == acta.id
    assert crud.valores_actuales(asignacion.acta) == OFICIALES
