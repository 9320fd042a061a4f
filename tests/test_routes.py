from escrutinio.core.config import settings
from escrutinio.models.models import EstadisticaUsuario

VALORES = {"pn": 100, "plh": 80, "pl": 60, "pinu": 10, "dc": 5, "nulos": 3, "blancos": 2}

API = "/api/v1"


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requires_token(client):
    response = client.post(f"{API}/verificacion/asignar", json={"modo": "digitalizar"})

    assert response.status_code == 401


def test_rejects_token_with_wrong_audience(client, auth):
    response = client.get(f"{API}/moderacion/estado", headers=auth("u1", aud="otra-app"))

    assert response.status_code == 401


def test_assign_then_digitize(client, auth, make_acta):
    make_acta()

    asignacion = client.post(f"{API}/verificacion/asignar", json={"modo": "digitalizar"}, headers=auth("u1"))

    assert asignacion.status_code == 200
    cuerpo = asignacion.json()
    assert cuerpo["resultado"] == "asignada"
    assert cuerpo["acta"]["valores"] is None
    uuid = cuerpo["acta"]["uuid"]

    pendiente = client.get(f"{API}/verificacion/pendiente", headers=auth("u1"))
    assert pendiente.json()["resultado"] == "pendiente"
    assert pendiente.json()["acta"]["uuid"] == uuid

    envio = client.post(
        f"{API}/verificacion/{uuid}/digitalizacion",
        json={"valores": VALORES},
        headers=auth("u1"),
    )

    assert envio.status_code == 200
    assert envio.json()["estado"] == "digitada"
    assert envio.json()["uuid"] != uuid


def test_assign_when_nothing_available(client, auth):
    response = client.post(f"{API}/verificacion/asignar", json={"modo": "validar"}, headers=auth("u1"))

    assert response.status_code == 200
    assert response.json()["resultado"] == "sin_actas"
    assert response.json()["acta"] is None


def test_banned_contributor_is_forbidden(client, auth, db, make_acta):
    from escrutinio.enums.enums import EstadoUsuario

    make_acta()
    db.add(EstadisticaUsuario(usuario_id="malo", estado=EstadoUsuario.baneado))
    db.commit()

    response = client.post(f"{API}/verificacion/asignar", json={"modo": "digitalizar"}, headers=auth("malo"))

    assert response.status_code == 403


def test_maintenance_returns_503(client, auth, make_acta, monkeypatch):
    make_acta()
    monkeypatch.setattr(settings, "ACTAS_MAINTENANCE", True)

    response = client.post(f"{API}/verificacion/asignar", json={"modo": "digitalizar"}, headers=auth("u1"))

    assert response.status_code == 503


def test_invalid_vote_values_are_rejected(client, auth, make_acta):
    acta = make_acta()

    negativo = client.post(
        f"{API}/verificacion/{acta.uuid}/digitalizacion",
        json={"valores": {**VALORES, "pn": -1}},
        headers=auth("u1"),
    )
    incompleto = client.post(
        f"{API}/verificacion/{acta.uuid}/digitalizacion",
        json={"valores": {"pn": 1}},
        headers=auth("u1"),
    )
    con_total = client.post(
        f"{API}/verificacion/{acta.uuid}/digitalizacion",
        json={"valores": {**VALORES, "total": 260}},
        headers=auth("u1"),
    )

    assert negativo.status_code == 422
    assert incompleto.status_code == 422
    assert con_total.status_code == 422


def test_correction_requires_values(client, auth, make_acta):
    acta = make_acta()

    response = client.post(
        f"{API}/verificacion/{acta.uuid}/validacion",
        json={"confirmar_correcto": False},
        headers=auth("u1"),
    )

    assert response.status_code == 422


def test_submission_without_lease_is_forbidden(client, auth, make_acta):
    acta = make_acta()

    response = client.post(
        f"{API}/verificacion/{acta.uuid}/digitalizacion",
        json={"valores": VALORES},
        headers=auth("u1"),
    )

    assert response.status_code == 403


def test_unknown_acta_is_not_found(client, auth):
    response = client.post(
        f"{API}/verificacion/no-existe/validacion",
        json={"confirmar_correcto": True},
        headers=auth("u1"),
    )

    assert response.status_code == 404


def test_validation_round_trip(client, auth, make_acta, digitar):
    acta = make_acta()
    digitar(acta, "d1")
    asignacion = client.post(f"{API}/verificacion/asignar", json={"modo": "validar"}, headers=auth("u1"))
    cuerpo = asignacion.json()
    assert cuerpo["modo"] == "validar"
    assert cuerpo["acta"]["valores"]["total"] == 260

    response = client.post(
        f"{API}/verificacion/{cuerpo['acta']['uuid']}/validacion",
        json={"confirmar_correcto": True},
        headers=auth("u1"),
    )

    assert response.status_code == 200
    assert response.json()["estado"] == "en_validacion"
    assert response.json()["cantidad_validaciones"] == 1


def test_duplicate_report_conflicts(client, auth, make_acta):
    acta = make_acta()
    url = f"{API}/verificacion/{acta.uuid}/reporte"

    primero = client.post(url, json={"tipo": "ilegible"}, headers=auth("u1"))
    segundo = client.post(url, json={"tipo": "ilegible"}, headers=auth("u1"))

    assert primero.status_code == 200
    assert segundo.status_code == 409


def test_lease_refresh_and_release(client, auth, make_acta):
    make_acta()
    uuid = client.post(
        f"{API}/verificacion/asignar", json={"modo": "digitalizar"}, headers=auth("u1")
    ).json()["acta"]["uuid"]

    renovado = client.post(f"{API}/verificacion/{uuid}/bloqueo", headers=auth("u1"))
    ajeno = client.post(f"{API}/verificacion/{uuid}/bloqueo", headers=auth("u2"))
    liberado = client.delete(f"{API}/verificacion/{uuid}/bloqueo", headers=auth("u1"))

    assert renovado.status_code == 200
    assert renovado.json()["bloqueado_hasta"] is not None
    assert renovado.json()["necesita_renovar"] is False
    assert ajeno.status_code == 403
    assert liberado.status_code == 200


# =========================================================
# Moderación y logros
# =========================================================

def test_own_banner(client, auth):
    response = client.get(f"{API}/moderacion/estado", headers=auth("u1"))

    assert response.status_code == 200
    assert response.json() == {"estado": "activo", "porcentaje_acierto": None, "razon": None}


def test_moderator_endpoints_require_authority(client, auth):
    response = client.get(f"{API}/moderacion/usuarios/u1/historial", headers=auth("u1"))

    assert response.status_code == 403


def test_moderator_sets_state(client, auth, db, monkeypatch):
    monkeypatch.setattr(settings, "MODERATOR_IDS", ["mod"])
    db.add(EstadisticaUsuario(usuario_id="u1"))
    db.commit()

    cambio = client.put(
        f"{API}/moderacion/usuarios/u1/estado",
        json={"estado": "restringido", "razon": "Patrón sospechoso"},
        headers=auth("mod"),
    )
    historial = client.get(f"{API}/moderacion/usuarios/u1/historial", headers=auth("mod"))
    desconocido = client.put(
        f"{API}/moderacion/usuarios/nadie/estado",
        json={"estado": "activo"},
        headers=auth("mod"),
    )

    assert cambio.status_code == 200
    assert cambio.json()["estado"] == "restringido"
    assert historial.status_code == 200
    entradas = historial.json()["historial"]
    assert len(entradas) == 1
    assert entradas[0]["modificado_por"] == "mod"
    assert entradas[0]["es_automatico"] is False
    assert desconocido.status_code == 404


def test_achievements_and_streak(client, auth, logros):
    racha = client.post(f"{API}/logros/racha", json={"valor": 10}, headers=auth("u1"))
    catalogo = client.get(f"{API}/logros", headers=auth("u1"))

    assert racha.status_code == 200
    assert [l["nombre"] for l in racha.json()] == ["Café Cargado"]
    assert catalogo.json()["total_obtenidos"] == 1
    assert len(catalogo.json()["logros"]) == 19


def test_negative_streak_is_rejected(client, auth):
    response = client.post(f"{API}/logros/racha", json={"valor": -1}, headers=auth("u1"))

    assert response.status_code == 422
