"""
Módulo CRUD para actas, estadísticas de usuario y auditoría.

Este módulo agrupa las operaciones de base de datos que comparten los
servicios de verificación: lectura de actas, lectura de valores de votos,
incrementos en el lugar de las estadísticas de cada usuario y registros de
auditoría.

Patrones:
    - Lecturas simples: por uuid, por id, por usuario
    - Incrementos atómicos: upsert con `ON CONFLICT DO UPDATE` que suma en
      la propia base de datos (nunca leer-sumar-escribir en memoria)
    - Auditoría: historial de digitación e historial de estados

Ninguna función hace commit; el servicio que llama es dueño de la
transacción.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from escrutinio.enums.enums import EstadoUsuario, TipoCambio
from escrutinio.models import models
from escrutinio.services.utils import ahora

logger = logging.getLogger(__name__)

# Orden canónico de los siete campos de votos
PARTIDOS = ("pn", "plh", "pl", "pinu", "dc", "nulos", "blancos")

# Contadores de EstadisticaUsuario que se pueden incrementar
CONTADORES_ESTADISTICA = (
    "actas_digitadas",
    "actas_validadas",
    "validaciones_correctas",
    "discrepancias_reportadas",
    "correcciones_recibidas",
)


# =========================================================
# 🗳️ VALORES DE VOTOS
# =========================================================

def columnas_votos(sufijo: str, valores: Tuple[int, ...]) -> Dict[str, int]:
    """
    Construir el diccionario de columnas para un juego de valores.

    El total siempre se calcula aquí a partir de los siete campos.

    Args:
        sufijo (str): "_digitado", "_oficial" o "" (validacion/historial)
        valores (Tuple[int, ...]): Siete conteos en orden PARTIDOS

    Returns:
        Dict[str, int]: {"votos_pn_digitado": 100, ..., "votos_total_digitado": 260}

    Example:
        columnas_votos("_digitado", (100, 80, 60, 10, 5, 3, 2))
    """
    columnas = {f"votos_{p}{sufijo}": v for p, v in zip(PARTIDOS, valores)}
    columnas[f"votos_total{sufijo}"] = sum(valores)
    return columnas


def columnas_votos_vacias(sufijo: str) -> Dict[str, None]:
    return {f"votos_{p}{sufijo}": None for p in PARTIDOS + ("total",)}


def leer_valores(obj, sufijo: str = "") -> Optional[Tuple[int, ...]]:
    """Leer los siete conteos de un modelo; None si falta alguno."""
    valores = tuple(getattr(obj, f"votos_{p}{sufijo}") for p in PARTIDOS)
    if any(v is None for v in valores):
        return None
    return valores


def valores_actuales(acta: models.Acta) -> Optional[Tuple[int, ...]]:
    """
    Valores vigentes de un acta.

    Los digitados tienen prioridad; si el acta nunca se digitó se usan los
    oficiales. Un acta sin ninguno de los dos no tiene valores.
    """
    return leer_valores(acta, "_digitado") or leer_valores(acta, "_oficial")


# =========================================================
# 📄 ACTAS
# =========================================================

def get_acta_by_uuid(db: Session, uuid: str) -> Optional[models.Acta]:
    """
    Obtener un acta por su uuid público.

    El uuid rota en cada envío, por lo que un enlace viejo devuelve None.

    Args:
        db (Session): Sesión de base de datos SQLAlchemy
        uuid (str): Token opaco del acta

    Returns:
        Optional[models.Acta]: El acta si existe, None si no
    """
    return db.query(models.Acta).filter(models.Acta.uuid == uuid).first()


def get_validaciones_acta(db: Session, acta_id: int) -> List[models.Validacion]:
    return (
        db.query(models.Validacion)
        .filter(models.Validacion.acta_id == acta_id)
        .order_by(models.Validacion.creado_en.asc())
        .all()
    )


def get_primera_digitacion(db: Session, acta_id: int) -> Optional[models.HistorialDigitacion]:
    """Registro de la digitación inicial (valores originales del digitador)."""
    return (
        db.query(models.HistorialDigitacion)
        .filter(
            models.HistorialDigitacion.acta_id == acta_id,
            models.HistorialDigitacion.tipo_cambio == TipoCambio.digitacion_inicial
        )
        .order_by(models.HistorialDigitacion.id.asc())
        .first()
    )


def get_ultimo_cambio_ajeno(db: Session, acta_id: int, usuario_id: str) -> Optional[models.HistorialDigitacion]:
    """Último cambio de valores del acta hecho por alguien distinto de `usuario_id`."""
    return (
        db.query(models.HistorialDigitacion)
        .filter(
            models.HistorialDigitacion.acta_id == acta_id,
            models.HistorialDigitacion.usuario_id != usuario_id
        )
        .order_by(models.HistorialDigitacion.creado_en.desc(), models.HistorialDigitacion.id.desc())
        .first()
    )


def contar_reportes(db: Session, acta_id: int) -> int:
    return (
        db.query(models.Discrepancia)
        .filter(models.Discrepancia.acta_id == acta_id)
        .count()
    )


def crear_historial_digitacion(
    db: Session,
    acta_id: int,
    usuario_id: str,
    tipo_cambio: TipoCambio,
    valores: Tuple[int, ...],
    comentario: Optional[str] = None
) -> models.HistorialDigitacion:
    """
    Registrar un cambio de valores en la auditoría del acta.

    Args:
        db (Session): Sesión de base de datos SQLAlchemy
        acta_id (int): ID interno del acta
        usuario_id (str): Usuario responsable del cambio
        tipo_cambio (TipoCambio): digitacion_inicial, correccion_validador o rectificacion
        valores (Tuple[int, ...]): Valores establecidos
        comentario (Optional[str]): Nota libre

    Returns:
        models.HistorialDigitacion: Registro agregado a la sesión (sin commit)
    """
    registro = models.HistorialDigitacion(
        acta_id=acta_id,
        usuario_id=usuario_id,
        tipo_cambio=tipo_cambio,
        comentario=comentario,
        **columnas_votos("", valores)
    )
    db.add(registro)
    return registro


# =========================================================
# 📊 ESTADÍSTICAS DE USUARIO
# =========================================================

def get_estadistica(db: Session, usuario_id: str) -> Optional[models.EstadisticaUsuario]:
    return (
        db.query(models.EstadisticaUsuario)
        .filter(models.EstadisticaUsuario.usuario_id == usuario_id)
        .first()
    )


def _insert_for(db: Session):
    """`insert` del dialecto activo; ambos soportan ON CONFLICT."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def incrementar_estadisticas(db: Session, usuario_id: str, **incrementos: int) -> None:
    """
    Incrementar contadores de un usuario creando su registro si no existe.

    Se ejecuta como un único upsert: la primera contribución inserta la fila
    con los incrementos como valores iniciales; las siguientes suman en el
    lugar sobre la fila existente.

    Args:
        db (Session): Sesión de base de datos SQLAlchemy
        usuario_id (str): Identificador externo del usuario
        **incrementos: contador=cantidad, solo de CONTADORES_ESTADISTICA

    Raises:
        ValueError: Si se pide un contador desconocido o un incremento negativo

    Example:
        incrementar_estadisticas(db, "u-1", actas_validadas=1, validaciones_correctas=1)
    """
    for campo, cantidad in incrementos.items():
        if campo not in CONTADORES_ESTADISTICA:
            raise ValueError(f"Contador desconocido: {campo}")
        if cantidad < 0:
            raise ValueError(f"Incremento negativo para {campo}: use restar_correccion")

    now = ahora()
    tabla = models.EstadisticaUsuario.__table__
    insert = _insert_for(db)

    stmt = insert(tabla).values(
        usuario_id=usuario_id,
        estado=EstadoUsuario.activo,
        primera_actividad=now,
        ultima_actividad=now,
        **incrementos
    )
    set_ = {campo: tabla.c[campo] + cantidad for campo, cantidad in incrementos.items()}
    set_["ultima_actividad"] = now
    stmt = stmt.on_conflict_do_update(index_elements=[tabla.c.usuario_id], set_=set_)
    db.execute(stmt)


def restar_correccion(db: Session, usuario_id: str, cantidad: int = 1) -> None:
    """
    Revertir correcciones recibidas sin bajar de cero.

    Se usa al reconciliar correcciones provisionales y al eliminar las
    validaciones de un usuario baneado.
    """
    col = models.EstadisticaUsuario.correcciones_recibidas
    db.execute(
        update(models.EstadisticaUsuario)
        .where(models.EstadisticaUsuario.usuario_id == usuario_id)
        .values(correcciones_recibidas=case((col > cantidad, col - cantidad), else_=0))
        .execution_options(synchronize_session=False)
    )


def cargar_correccion_consenso(db: Session, acta_id: int, usuario_id: str) -> None:
    """+1 corrección por reconciliación de consenso, anotada para poder revertirla."""
    incrementar_estadisticas(db, usuario_id, correcciones_recibidas=1)
    db.add(models.CorreccionConsenso(acta_id=acta_id, usuario_id=usuario_id))


def revertir_correcciones_consenso(db: Session, acta_id: int) -> List[str]:
    """
    Deshacer las correcciones que cargó el consenso de un acta.

    Returns:
        List[str]: Usuarios a los que se les restó una corrección
    """
    cargos = (
        db.query(models.CorreccionConsenso)
        .filter(models.CorreccionConsenso.acta_id == acta_id)
        .all()
    )
    for cargo in cargos:
        restar_correccion(db, cargo.usuario_id)
    db.query(models.CorreccionConsenso).filter(
        models.CorreccionConsenso.acta_id == acta_id
    ).delete(synchronize_session=False)
    return [cargo.usuario_id for cargo in cargos]


def crear_historial_estado(
    db: Session,
    usuario_id: str,
    estado_anterior: EstadoUsuario,
    estado_nuevo: EstadoUsuario,
    razon: Optional[str],
    validaciones_totales: int,
    correcciones_recibidas: int,
    porcentaje_acierto: Optional[int],
    es_automatico: bool = True,
    modificado_por: Optional[str] = None
) -> models.HistorialUsuarioEstado:
    """Agregar una entrada append-only al historial de estados (sin commit)."""
    entrada = models.HistorialUsuarioEstado(
        usuario_id=usuario_id,
        estado_anterior=estado_anterior,
        estado_nuevo=estado_nuevo,
        razon=razon,
        validaciones_totales=validaciones_totales,
        correcciones_recibidas=correcciones_recibidas,
        porcentaje_acierto=porcentaje_acierto,
        es_automatico=es_automatico,
        modificado_por=modificado_por,
    )
    db.add(entrada)
    return entrada


def get_historial_estado(db: Session, usuario_id: str, limit: int = 50) -> List[models.HistorialUsuarioEstado]:
    return (
        db.query(models.HistorialUsuarioEstado)
        .filter(models.HistorialUsuarioEstado.usuario_id == usuario_id)
        .order_by(models.HistorialUsuarioEstado.creado_en.desc(), models.HistorialUsuarioEstado.id.desc())
        .limit(limit)
        .all()
    )
