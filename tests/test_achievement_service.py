from escrutinio.core.init_logros import LOGROS_CATALOGO, init_logros
from escrutinio.enums.enums import TipoLogro
from escrutinio.models.models import Logro, UsuarioLogro
from escrutinio.services.achievement_service import AchievementService


def test_seed_is_idempotent(db):
    assert init_logros(db) == len(LOGROS_CATALOGO) == 19
    assert init_logros(db) == 0
    assert db.query(Logro).count() == 19


def test_grants_every_reached_milestone_once(db, logros):
    otorgados = AchievementService.check_and_grant(db, "u1", TipoLogro.validaciones_totales, 55)

    assert [l.valor_objetivo for l in otorgados] == [1, 10, 50]
    assert AchievementService.check_and_grant(db, "u1", TipoLogro.validaciones_totales, 55) == []
    assert db.query(UsuarioLogro).filter_by(usuario_id="u1").count() == 3


def test_milestones_are_per_type(db, logros):
    otorgados = AchievementService.check_and_grant(db, "u1", TipoLogro.reportes_totales, 5)

    assert [l.nombre for l in otorgados] == ["Vigilante"]
    assert AchievementService.check_and_grant(db, "u1", TipoLogro.racha_sesion, 9) == []


def test_grant_without_catalog_is_empty(db):
    assert AchievementService.check_and_grant(db, "u1", TipoLogro.validaciones_totales, 100) == []


def test_safe_check_swallows_errors(db, monkeypatch):
    def falla(db_, usuario_id, tipo, valor):
        raise RuntimeError("boom")

    monkeypatch.setattr(AchievementService, "check_and_grant", staticmethod(falla))

    assert AchievementService.safe_check_and_grant(db, "u1", TipoLogro.racha_sesion, 10) == []


def test_list_with_status(db, logros):
    AchievementService.check_and_grant(db, "u1", TipoLogro.racha_sesion, 20)

    resultado = AchievementService.list_with_status(db, "u1")

    assert resultado.total_obtenidos == 2
    assert len(resultado.logros) == 19
    obtenidos = [l.nombre for l in resultado.logros if l.obtenido]
    assert obtenidos == ["Café Cargado", "El Filtro Automático"]
    assert all(l.obtenido_en is not None for l in resultado.logros if l.obtenido)
