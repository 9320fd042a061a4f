"""
Motor de reputación y moderación automática.

Escalera de estados: activo -> advertido -> restringido -> baneado.

Reglas:
    - La precisión solo se calcula con MIN_VALIDATIONS_FOR_EVALUATION o más
      validaciones; antes el usuario es siempre "activo"
    - Cada evaluación avanza como máximo un escalón y nunca retrocede
    - Un estado bloqueado por un moderador no cambia automáticamente
    - Al banear se eliminan validaciones y reportes del usuario en la misma
      transacción que actualiza sus estadísticas
    - Los fallos de evaluación se registran y nunca llegan al usuario
"""

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from escrutinio.core.config import settings
from escrutinio.db.crud import crud
from escrutinio.enums.enums import EstadoActa, EstadoUsuario
from escrutinio.models.models import (
    Acta, Discrepancia, EstadisticaUsuario, HistorialUsuarioEstado, Validacion
)
from escrutinio.services.utils import ahora

logger = logging.getLogger(__name__)


class ModerationServiceError(Exception):
    """Base exception for ModerationService errors"""
    pass


class ContributorNotFoundError(ModerationServiceError):
    """No hay estadísticas para el usuario"""
    pass


@dataclass
class Banner:
    estado: EstadoUsuario
    porcentaje_acierto: Optional[int] = None
    razon: Optional[str] = None


# =========================================================
# Funciones puras
# =========================================================

def calcular_porcentaje_acierto(actas_validadas: int, correcciones_recibidas: int) -> Optional[int]:
    """
    Precisión = (validadas - correcciones) / validadas * 100, redondeada.

    Devuelve None por debajo del mínimo de validaciones. El periodo de gracia
    descuenta las primeras N validaciones y hasta N correcciones. El
    resultado se acota a [0, 100] porque las correcciones pueden superar a
    las validaciones registradas.
    """
    if actas_validadas < settings.MIN_VALIDATIONS_FOR_EVALUATION:
        return None

    gracia = settings.GRACE_PERIOD_VALIDATIONS
    validaciones = max(0, actas_validadas - gracia)
    correcciones = max(0, correcciones_recibidas - min(correcciones_recibidas, gracia))
    if validaciones == 0:
        return None

    porcentaje = (validaciones - correcciones) * 100 / validaciones
    # round() de Python redondea al par; aquí .5 siempre sube
    return max(0, min(100, math.floor(porcentaje + 0.5)))


def estado_sugerido(porcentaje_acierto: Optional[int]) -> EstadoUsuario:
    if porcentaje_acierto is None:
        return EstadoUsuario.activo
    if porcentaje_acierto < settings.BAN_ACCURACY:
        return EstadoUsuario.baneado
    if porcentaje_acierto < settings.RESTRICTION_ACCURACY:
        return EstadoUsuario.restringido
    if porcentaje_acierto < settings.WARNING_ACCURACY:
        return EstadoUsuario.advertido
    return EstadoUsuario.activo


def next_step(actual: EstadoUsuario, sugerido: EstadoUsuario, bloqueado: bool) -> Optional[EstadoUsuario]:
    """
    Siguiente escalón de la escalera, o None si no hay cambio.

    Nunca salta niveles ni retrocede; un estado bloqueado no se mueve.
    """
    if bloqueado or sugerido <= actual:
        return None
    escalera = list(EstadoUsuario)
    return escalera[actual.nivel + 1]


def razon_cambio(estado: EstadoUsuario, porcentaje: Optional[int]) -> str:
    porcentaje = porcentaje if porcentaje is not None else 0
    if estado == EstadoUsuario.advertido:
        return (f"Precisión baja detectada: {porcentaje}%. "
                f"Se requiere al menos {settings.WARNING_ACCURACY}% de precisión.")
    if estado == EstadoUsuario.restringido:
        return (f"Precisión muy baja: {porcentaje}%. Advertencia final. "
                f"Se requiere al menos {settings.RESTRICTION_ACCURACY}% de precisión.")
    if estado == EstadoUsuario.baneado:
        return (f"Precisión crítica: {porcentaje}%. Contribuciones suspendidas. "
                f"Se requiere al menos {settings.BAN_ACCURACY}% de precisión.")
    return f"Precisión mejorada: {porcentaje}%. Restricciones levantadas."


# =========================================================
# Servicio
# =========================================================

class ModerationService:

    @staticmethod
    @contextmanager
    def db_transaction(db: Session):
        """Context manager for database transactions with rollback on error"""
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Moderation transaction failed: {e}")
            raise

    @staticmethod
    def _restaurar_valores(db: Session, acta_id: int, usuario_id: str) -> None:
        """
        Quitar al usuario baneado la autoría de los valores vigentes del acta.

        Si otra validación que se conserva registró exactamente esos valores,
        ella pasa a ser la autora. Si no, el acta vuelve a los valores del
        último cambio hecho por otro usuario; sin ninguno, se limpian los
        digitados y rigen los oficiales.
        """
        acta = db.get(Acta, acta_id, populate_existing=True)
        actuales = crud.valores_actuales(acta)
        respaldo = next(
            (
                v for v in crud.get_validaciones_acta(db, acta_id)
                if v.usuario_id != usuario_id and crud.leer_valores(v) == actuales
            ),
            None,
        )
        if respaldo is not None:
            cambios = {"valores_por": respaldo.usuario_id}
        else:
            previo = crud.get_ultimo_cambio_ajeno(db, acta_id, usuario_id)
            if previo is not None:
                cambios = crud.columnas_votos("_digitado", crud.leer_valores(previo))
                cambios["valores_por"] = previo.usuario_id
            else:
                cambios = crud.columnas_votos_vacias("_digitado")
                cambios["valores_por"] = None

        db.execute(
            update(Acta)
            .where(Acta.id == acta_id)
            .values(**cambios)
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Acta {acta_id}: valores de {usuario_id} reemplazados, autor {cambios['valores_por']}")

    @staticmethod
    def _eliminar_contribuciones(db: Session, usuario_id: str) -> int:
        """
        Borrar validaciones y reportes de un usuario baneado.

        Cada acta afectada pierde la validación de su contador (y de las
        correctas si coincidía) y vuelve al pool de validación, salvo que
        esté bajo revisión. Se revierten las correcciones provisionales que
        esas validaciones cargaron a otros usuarios y, si el acta ya estaba
        validada, las que cargó su consenso. Los valores vigentes que aportó
        el usuario se reemplazan.
        """
        validaciones = db.query(Validacion).filter(Validacion.usuario_id == usuario_id).all()

        for v in validaciones:
            total = Acta.cantidad_validaciones
            correctas = Acta.cantidad_validaciones_correctas
            valores = {"cantidad_validaciones": case((total > 0, total - 1), else_=0)}
            if v.es_correcto:
                valores["cantidad_validaciones_correctas"] = case((correctas > 0, correctas - 1), else_=0)

            row = db.execute(
                update(Acta)
                .where(Acta.id == v.acta_id)
                .values(**valores, actualizado_en=ahora())
                .returning(Acta.cantidad_validaciones, Acta.estado, Acta.digitado_por, Acta.valores_por)
                .execution_options(synchronize_session=False)
            ).first()
            if row is None:
                continue

            if row.estado != EstadoActa.bajo_revision:
                if row.estado == EstadoActa.validada:
                    crud.revertir_correcciones_consenso(db, v.acta_id)
                if row.cantidad_validaciones > 0:
                    nuevo_estado = EstadoActa.en_validacion
                elif row.digitado_por is not None:
                    nuevo_estado = EstadoActa.digitada
                else:
                    nuevo_estado = EstadoActa.pendiente
                db.execute(
                    update(Acta)
                    .where(Acta.id == v.acta_id)
                    .values(estado=nuevo_estado)
                    .execution_options(synchronize_session=False)
                )

            if v.corrigio_a:
                crud.restar_correccion(db, v.corrigio_a)

            if row.valores_por == usuario_id:
                ModerationService._restaurar_valores(db, v.acta_id, usuario_id)

        db.query(Validacion).filter(Validacion.usuario_id == usuario_id).delete(synchronize_session=False)
        reportes = (
            db.query(Discrepancia)
            .filter(Discrepancia.usuario_id == usuario_id)
            .delete(synchronize_session=False)
        )
        logger.warning(
            f"Ban de {usuario_id}: {len(validaciones)} validaciones y {reportes} reportes eliminados"
        )
        return len(validaciones)

    @staticmethod
    def _transicionar(
        db: Session,
        stats: EstadisticaUsuario,
        hacia: EstadoUsuario,
        porcentaje: Optional[int],
    ) -> bool:
        """
        Aplicar un cambio automático partiendo del estado leído en `stats`.

        El UPDATE exige que el estado siga siendo el leído y que no haya
        bloqueo de moderador; si otra evaluación ya lo movió no se toca nada.
        Baneo, estadísticas e historial van en una sola transacción.
        """
        usuario_id = stats.usuario_id
        desde = stats.estado
        validadas = stats.actas_validadas
        correcciones = stats.correcciones_recibidas
        razon = razon_cambio(hacia, porcentaje)
        now = ahora()

        with ModerationService.db_transaction(db):
            result = db.execute(
                update(EstadisticaUsuario)
                .where(
                    EstadisticaUsuario.usuario_id == usuario_id,
                    EstadisticaUsuario.estado == desde,
                    EstadisticaUsuario.estado_bloqueado_por_admin.is_(False),
                )
                .values(
                    estado=hacia,
                    estado_cambiado_en=now,
                    razon_estado=razon,
                    ultima_advertencia_en=now,
                    conteo_advertencias=EstadisticaUsuario.conteo_advertencias + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info(f"Evaluación de {usuario_id} descartada: el estado ya no es {desde.value}")
                return False

            if hacia == EstadoUsuario.baneado:
                ModerationService._eliminar_contribuciones(db, usuario_id)

            crud.crear_historial_estado(
                db,
                usuario_id=usuario_id,
                estado_anterior=desde,
                estado_nuevo=hacia,
                razon=razon,
                validaciones_totales=validadas,
                correcciones_recibidas=correcciones,
                porcentaje_acierto=porcentaje,
            )

        logger.warning(f"Usuario {usuario_id}: {desde.value} -> {hacia.value} ({porcentaje}%)")
        return True

    @staticmethod
    def evaluate(db: Session, usuario_id: str) -> Optional[EstadoUsuario]:
        """
        Reevaluar el estado de moderación de un usuario.

        Returns:
            El nuevo estado si hubo transición, None si no hubo cambio.
        """
        stats = crud.get_estadistica(db, usuario_id)
        if stats is None:
            return None

        porcentaje = calcular_porcentaje_acierto(stats.actas_validadas, stats.correcciones_recibidas)
        sugerido = estado_sugerido(porcentaje)
        nuevo = next_step(stats.estado, sugerido, stats.estado_bloqueado_por_admin)
        if nuevo is None:
            return None

        # Otra evaluación llevó al usuario a este mismo destino hace menos
        # de la ventana; un escalón distinto sigue adelante y el UPDATE
        # condicional de _transicionar evita el doble salto
        if (
            stats.estado_cambiado_en is not None
            and ahora() - stats.estado_cambiado_en < timedelta(seconds=settings.STATE_CHANGE_RACE_WINDOW_SECONDS)
            and stats.estado == nuevo
        ):
            logger.info(f"Evaluación de {usuario_id} omitida: ya está en {nuevo.value} desde hace menos de la ventana")
            return None

        if ModerationService._transicionar(db, stats, nuevo, porcentaje):
            return nuevo
        return None

    @staticmethod
    def safe_evaluate(db: Session, usuarios: List[str]) -> None:
        """Evaluar varios usuarios sin propagar errores a la acción que los disparó."""
        for usuario_id in dict.fromkeys(u for u in usuarios if u):
            try:
                ModerationService.evaluate(db, usuario_id)
            except Exception:
                db.rollback()
                logger.exception(f"Error evaluando estado de moderación de {usuario_id}")

    @staticmethod
    def get_banner(db: Session, usuario_id: str) -> Banner:
        stats = crud.get_estadistica(db, usuario_id)
        if stats is None:
            return Banner(estado=EstadoUsuario.activo)
        porcentaje = calcular_porcentaje_acierto(stats.actas_validadas, stats.correcciones_recibidas)
        razon = stats.razon_estado if stats.estado != EstadoUsuario.activo else None
        return Banner(estado=stats.estado, porcentaje_acierto=porcentaje, razon=razon)

    @staticmethod
    def set_state_manually(
        db: Session,
        usuario_id: str,
        estado: EstadoUsuario,
        moderador_id: str,
        razon: Optional[str] = None,
        bloquear: bool = True,
    ) -> EstadisticaUsuario:
        """
        Cambio de estado hecho por un moderador.

        Puede subir o bajar de nivel. Con `bloquear` el estado queda fijo para
        la moderación automática. Banear manualmente también elimina las
        contribuciones del usuario.
        """
        stats = crud.get_estadistica(db, usuario_id)
        if stats is None:
            raise ContributorNotFoundError(f"Usuario {usuario_id} sin estadísticas")

        anterior = stats.estado
        porcentaje = calcular_porcentaje_acierto(stats.actas_validadas, stats.correcciones_recibidas)
        razon = razon or f"Cambio manual de estado por moderador: {anterior.value} -> {estado.value}"
        now = ahora()

        with ModerationService.db_transaction(db):
            if estado == EstadoUsuario.baneado and anterior != EstadoUsuario.baneado:
                ModerationService._eliminar_contribuciones(db, usuario_id)

            stats.estado = estado
            stats.estado_cambiado_en = now
            stats.razon_estado = razon
            stats.estado_bloqueado_por_admin = bloquear

            crud.crear_historial_estado(
                db,
                usuario_id=usuario_id,
                estado_anterior=anterior,
                estado_nuevo=estado,
                razon=razon,
                validaciones_totales=stats.actas_validadas,
                correcciones_recibidas=stats.correcciones_recibidas,
                porcentaje_acierto=porcentaje,
                es_automatico=False,
                modificado_por=moderador_id,
            )

        db.refresh(stats)
        logger.info(f"Moderador {moderador_id} cambió a {usuario_id}: {anterior.value} -> {estado.value}")
        return stats

    @staticmethod
    def get_history(db: Session, usuario_id: str, limit: int = 50) -> List[HistorialUsuarioEstado]:
        return crud.get_historial_estado(db, usuario_id, limit=limit)
