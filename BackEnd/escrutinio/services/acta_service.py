"""
Flujos de envío sobre actas: digitalización, validación y reportes.

Cada envío corre en una sola transacción y aplica sus efectos sobre la fila
del acta con un UPDATE condicional que vuelve a comprobar el bloqueo del
usuario; si el bloqueo venció o es de otro, no se aplica nada. Los
contadores se incrementan en el lugar.

Después del commit, y sin afectar el resultado del envío:
    - se reevalúa la moderación del usuario y de los usuarios corregidos
    - se revisan los logros del usuario
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Set

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from escrutinio.core.config import settings
from escrutinio.db.crud import crud
from escrutinio.enums.enums import (
    ESTADOS_FUERA_DEL_POOL, EstadoActa, ResultadoOperacion, TipoCambio,
    TipoDiscrepancia, TipoLogro
)
from escrutinio.models.models import Acta, Discrepancia, Logro, Validacion
from escrutinio.services import consensus
from escrutinio.services.achievement_service import AchievementService
from escrutinio.services.lease_service import LeaseService, lease_held_by
from escrutinio.services.moderation_service import ModerationService
from escrutinio.services.utils import ahora, nuevo_uuid

logger = logging.getLogger(__name__)


# =========================================================
# Errores
# =========================================================

class ActaServiceError(Exception):
    """Base exception for ActaService errors"""
    status_code = 400
    detail = "No se pudo procesar el acta"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class ActaNotFoundError(ActaServiceError):
    status_code = 404
    detail = "Acta no encontrada"


class LeaseNotHeldError(ActaServiceError):
    status_code = 403
    detail = "Tu tiempo para esta acta expiró o la tiene otro usuario. Solicita una nueva."


class ActaConflictError(ActaServiceError):
    status_code = 409
    detail = "Alguien más está trabajando en esta acta, intenta con otra"


class AlreadyHandledError(ActaServiceError):
    status_code = 409
    detail = "Ya procesaste esta acta"


class ActaInvalidStateError(ActaServiceError):
    status_code = 409
    detail = "El acta no admite esta operación en su estado actual"


class ContributorBannedError(ActaServiceError):
    status_code = 403
    detail = "Tus contribuciones están suspendidas"


class MaintenanceError(ActaServiceError):
    status_code = 503
    detail = "La asignación de actas está en mantenimiento"


ERRORES_POR_RESULTADO = {
    ResultadoOperacion.no_encontrada: ActaNotFoundError,
    ResultadoOperacion.no_es_titular: LeaseNotHeldError,
    ResultadoOperacion.bloqueo_rechazado: ActaConflictError,
    ResultadoOperacion.ya_validada: AlreadyHandledError,
    ResultadoOperacion.ya_reportada: AlreadyHandledError,
    ResultadoOperacion.ya_digitada: AlreadyHandledError,
    ResultadoOperacion.estado_invalido: ActaInvalidStateError,
    ResultadoOperacion.baneado: ContributorBannedError,
    ResultadoOperacion.mantenimiento: MaintenanceError,
}


class _Rechazo(Exception):
    """Resultado tipado que obliga a deshacer la transacción en curso."""

    def __init__(self, resultado: ResultadoOperacion):
        super().__init__(resultado.value)
        self.resultado = resultado


@dataclass
class Envio:
    resultado: ResultadoOperacion
    estado: Optional[EstadoActa] = None
    uuid: Optional[str] = None
    cantidad_validaciones: Optional[int] = None
    cantidad_validaciones_correctas: Optional[int] = None
    bloqueado_hasta: Optional[datetime] = None
    logros: List[Logro] = field(default_factory=list)
    afectados: Set[str] = field(default_factory=set)

    @property
    def ok(self) -> bool:
        return self.resultado == ResultadoOperacion.ok


class ActaService:

    @staticmethod
    @contextmanager
    def db_transaction(db: Session):
        """Context manager for database transactions with rollback on error"""
        try:
            yield db
            db.commit()
        except _Rechazo:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Database transaction failed: {e}")
            raise

    @staticmethod
    def raise_for(resultado: ResultadoOperacion) -> None:
        """Traducir un resultado de error a su excepción de servicio."""
        error = ERRORES_POR_RESULTADO.get(resultado)
        if error is not None:
            raise error()

    @staticmethod
    def _after_commit(db: Session, usuario_id: str, envio: Envio, tipo: TipoLogro, contador: str) -> None:
        ModerationService.safe_evaluate(db, [usuario_id, *sorted(envio.afectados)])
        stats = crud.get_estadistica(db, usuario_id)
        if stats is not None:
            envio.logros = AchievementService.safe_check_and_grant(
                db, usuario_id, tipo, getattr(stats, contador)
            )

    # =========================================================
    # Digitalización
    # =========================================================

    @staticmethod
    def submit_digitization(db: Session, acta_uuid: str, usuario_id: str, valores: Sequence[int]) -> Envio:
        """
        Guardar la primera transcripción de un acta.

        Requiere bloqueo vigente del usuario. Los valores pasan a ser los
        valores actuales del acta y el usuario queda como su autor.
        """
        acta = crud.get_acta_by_uuid(db, acta_uuid)
        if acta is None:
            return Envio(ResultadoOperacion.no_encontrada)
        if acta.digitado_por is not None:
            return Envio(ResultadoOperacion.ya_digitada)
        if acta.escrutada_en_cne:
            return Envio(ResultadoOperacion.estado_invalido)

        valores = tuple(valores)
        acta_id = acta.id
        now = ahora()
        nuevo = nuevo_uuid()

        try:
            with ActaService.db_transaction(db):
                result = db.execute(
                    update(Acta)
                    .where(
                        Acta.id == acta_id,
                        Acta.digitado_por.is_(None),
                        lease_held_by(usuario_id, now),
                    )
                    .values(
                        **crud.columnas_votos("_digitado", valores),
                        digitado_por=usuario_id,
                        digitado_en=now,
                        valores_por=usuario_id,
                        estado=EstadoActa.digitada,
                        bloqueado_por=None,
                        bloqueado_hasta=None,
                        uuid=nuevo,
                        actualizado_en=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise _Rechazo(ResultadoOperacion.no_es_titular)

                crud.crear_historial_digitacion(
                    db, acta_id, usuario_id, TipoCambio.digitacion_inicial, valores
                )
                crud.incrementar_estadisticas(db, usuario_id, actas_digitadas=1)
        except _Rechazo as r:
            logger.info(f"Digitalización rechazada ({r.resultado.value}) para {usuario_id} en acta {acta_id}")
            return Envio(r.resultado)

        logger.info(f"Acta {acta_id} digitada por {usuario_id}")
        return Envio(ResultadoOperacion.ok, estado=EstadoActa.digitada, uuid=nuevo)

    # =========================================================
    # Validación
    # =========================================================

    @staticmethod
    def _reconciliar(db: Session, acta_id: int, validada: bool) -> Set[str]:
        """
        Cerrar el conteo de correcciones de un acta que llegó al quórum.

        Siempre revierte las correcciones provisionales cargadas durante las
        validaciones. Si el acta quedó validada, carga una corrección a cada
        validador cuyo envío difiere del consenso y al digitador si su
        transcripción original también difiere (anotadas en CorreccionConsenso
        para revertirlas si un baneo reabre el acta), y fija los valores de
        consenso en el acta.

        Returns:
            Usuarios cuyo contador de correcciones cambió.
        """
        validaciones = crud.get_validaciones_acta(db, acta_id)
        afectados = set()

        for v in validaciones:
            if v.corrigio_a:
                crud.restar_correccion(db, v.corrigio_a)
                afectados.add(v.corrigio_a)
                v.corrigio_a = None

        if not validada:
            return afectados

        resultado = consensus.find_consensus(
            [(v.usuario_id, crud.leer_valores(v)) for v in validaciones]
        )
        if resultado.valores is None:
            logger.warning(f"Acta {acta_id} validada sin mayoría literal entre envíos")
            return afectados

        for usuario in resultado.discrepantes:
            crud.cargar_correccion_consenso(db, acta_id, usuario)
            afectados.add(usuario)

        original = crud.get_primera_digitacion(db, acta_id)
        if original is not None and crud.leer_valores(original) != resultado.valores:
            crud.cargar_correccion_consenso(db, acta_id, original.usuario_id)
            afectados.add(original.usuario_id)

        # Los UPDATE previos no sincronizan la sesión
        acta = db.get(Acta, acta_id, populate_existing=True)
        if crud.valores_actuales(acta) != resultado.valores:
            autor = resultado.coincidentes[0]
            db.execute(
                update(Acta)
                .where(Acta.id == acta_id)
                .values(**crud.columnas_votos("_digitado", resultado.valores), valores_por=autor)
                .execution_options(synchronize_session=False)
            )
            crud.crear_historial_digitacion(
                db, acta_id, autor, TipoCambio.rectificacion, resultado.valores,
                comentario="Valores de consenso"
            )
        return afectados

    @staticmethod
    def submit_validation(
        db: Session,
        acta_uuid: str,
        usuario_id: str,
        confirmar_correcto: bool,
        valores: Optional[Sequence[int]] = None,
        comentario: Optional[str] = None,
    ) -> Envio:
        """
        Registrar la validación de un acta.

        Flujo:
            1. Precondiciones: acta existe, bloqueo vigente del usuario, acta
               en el pool y con valores guardados
            2. Insertar la validación (duplicado -> YA_VALIDADA)
            3. UPDATE condicional al bloqueo: incrementa contadores, aplica la
               corrección, libera el bloqueo y rota el uuid (RETURNING)
            4. Corrección provisional al autor previo de los valores
            5. Al llegar al quórum: decidir estado y reconciliar correcciones
            6. Estadísticas del validador
        """
        acta = crud.get_acta_by_uuid(db, acta_uuid)
        if acta is None:
            return Envio(ResultadoOperacion.no_encontrada)

        now = ahora()
        if acta.bloqueado_por != usuario_id or acta.bloqueado_hasta is None or acta.bloqueado_hasta <= now:
            return Envio(ResultadoOperacion.no_es_titular)
        if (
            acta.digitado_por == usuario_id
            or acta.estado in ESTADOS_FUERA_DEL_POOL
            or acta.cantidad_validaciones >= settings.VALIDATION_QUORUM
        ):
            return Envio(ResultadoOperacion.estado_invalido)

        ya_validada = (
            db.query(Validacion.usuario_id)
            .filter(Validacion.acta_id == acta.id, Validacion.usuario_id == usuario_id)
            .first()
        )
        if ya_validada:
            return Envio(ResultadoOperacion.ya_validada)

        try:
            evaluacion = consensus.evaluate_submission(
                crud.valores_actuales(acta), confirmar_correcto, valores
            )
        except consensus.ConsensusInvariantError as e:
            logger.error(f"Validación imposible en acta {acta.id}: {e}")
            return Envio(ResultadoOperacion.estado_invalido)

        acta_id = acta.id
        autor_previo = acta.valores_por or acta.digitado_por
        corrigio_a = autor_previo if evaluacion.es_correccion and autor_previo != usuario_id else None
        nuevo = nuevo_uuid()
        afectados = set()

        try:
            with ActaService.db_transaction(db):
                db.add(Validacion(
                    acta_id=acta_id,
                    usuario_id=usuario_id,
                    es_correcto=evaluacion.coincide,
                    corrigio_a=corrigio_a,
                    comentario=comentario,
                    **crud.columnas_votos("", evaluacion.valores)
                ))
                try:
                    db.flush()
                except IntegrityError:
                    raise _Rechazo(ResultadoOperacion.ya_validada)

                cambios = {
                    "cantidad_validaciones": Acta.cantidad_validaciones + 1,
                    "bloqueado_por": None,
                    "bloqueado_hasta": None,
                    "uuid": nuevo,
                    "actualizado_en": now,
                }
                if evaluacion.coincide:
                    cambios["cantidad_validaciones_correctas"] = Acta.cantidad_validaciones_correctas + 1
                else:
                    cambios.update(crud.columnas_votos("_digitado", evaluacion.valores))
                    cambios["valores_por"] = usuario_id

                row = db.execute(
                    update(Acta)
                    .where(Acta.id == acta_id, lease_held_by(usuario_id, now))
                    .values(**cambios)
                    .returning(Acta.cantidad_validaciones, Acta.cantidad_validaciones_correctas)
                    .execution_options(synchronize_session=False)
                ).first()
                if row is None:
                    raise _Rechazo(ResultadoOperacion.no_es_titular)
                total, coincidentes = row

                if evaluacion.es_correccion:
                    crud.crear_historial_digitacion(
                        db, acta_id, usuario_id, TipoCambio.correccion_validador,
                        evaluacion.valores, comentario=comentario
                    )
                    if corrigio_a:
                        crud.incrementar_estadisticas(db, corrigio_a, correcciones_recibidas=1)
                        afectados.add(corrigio_a)

                estado = consensus.decide_status(total, coincidentes)
                if total >= settings.VALIDATION_QUORUM:
                    afectados |= ActaService._reconciliar(db, acta_id, estado == EstadoActa.validada)

                db.execute(
                    update(Acta)
                    .where(Acta.id == acta_id)
                    .values(estado=estado)
                    .execution_options(synchronize_session=False)
                )

                incrementos = {"actas_validadas": 1}
                if evaluacion.coincide:
                    incrementos["validaciones_correctas"] = 1
                crud.incrementar_estadisticas(db, usuario_id, **incrementos)
        except _Rechazo as r:
            logger.info(f"Validación rechazada ({r.resultado.value}) para {usuario_id} en acta {acta_id}")
            return Envio(r.resultado)

        logger.info(
            f"Acta {acta_id} validada por {usuario_id}: "
            f"{'coincide' if evaluacion.coincide else 'corrige'} ({coincidentes}/{total}) -> {estado.value}"
        )
        envio = Envio(
            ResultadoOperacion.ok,
            estado=estado,
            uuid=nuevo,
            cantidad_validaciones=total,
            cantidad_validaciones_correctas=coincidentes,
            afectados=afectados,
        )
        ActaService._after_commit(db, usuario_id, envio, TipoLogro.validaciones_totales, "actas_validadas")
        return envio

    # =========================================================
    # Reportes
    # =========================================================

    @staticmethod
    def report_problem(
        db: Session,
        acta_uuid: str,
        usuario_id: str,
        tipo: TipoDiscrepancia,
        descripcion: Optional[str] = None,
    ) -> Envio:
        """
        Reportar un problema con un acta.

        Un segundo reporte del mismo usuario no se registra y solo libera su
        bloqueo. Con REPORT_THRESHOLD reportes el acta sale del pool
        (bajo_revision), se limpia el bloqueo y se rota el uuid; si no, se
        libera el bloqueo del usuario.
        """
        acta = crud.get_acta_by_uuid(db, acta_uuid)
        if acta is None:
            return Envio(ResultadoOperacion.no_encontrada)
        acta_id = acta.id

        ya_reportada = (
            db.query(Discrepancia.id)
            .filter(Discrepancia.acta_id == acta_id, Discrepancia.usuario_id == usuario_id)
            .first()
        )
        if ya_reportada:
            LeaseService.release(db, acta_uuid, usuario_id)
            return Envio(ResultadoOperacion.ya_reportada)

        now = ahora()
        nuevo = None
        try:
            with ActaService.db_transaction(db):
                db.add(Discrepancia(acta_id=acta_id, usuario_id=usuario_id, tipo=tipo, descripcion=descripcion))
                try:
                    db.flush()
                except IntegrityError:
                    raise _Rechazo(ResultadoOperacion.ya_reportada)

                if crud.contar_reportes(db, acta_id) >= settings.REPORT_THRESHOLD:
                    nuevo = nuevo_uuid()
                    db.execute(
                        update(Acta)
                        .where(Acta.id == acta_id)
                        .values(
                            uuid=nuevo,
                            estado=EstadoActa.bajo_revision,
                            bloqueado_por=None,
                            bloqueado_hasta=None,
                            actualizado_en=now,
                        )
                        .execution_options(synchronize_session=False)
                    )
                else:
                    db.execute(
                        update(Acta)
                        .where(Acta.id == acta_id, Acta.bloqueado_por == usuario_id)
                        .values(bloqueado_por=None, bloqueado_hasta=None, actualizado_en=now)
                        .execution_options(synchronize_session=False)
                    )

                crud.incrementar_estadisticas(db, usuario_id, discrepancias_reportadas=1)
        except _Rechazo as r:
            LeaseService.release(db, acta_uuid, usuario_id)
            return Envio(r.resultado)

        if nuevo:
            logger.warning(f"Acta {acta_id} fuera del pool por reportes (bajo_revision)")
        db.refresh(acta)
        envio = Envio(ResultadoOperacion.ok, estado=acta.estado, uuid=acta.uuid)
        ActaService._after_commit(db, usuario_id, envio, TipoLogro.reportes_totales, "discrepancias_reportadas")
        return envio

    # =========================================================
    # Bloqueo
    # =========================================================

    @staticmethod
    def refresh_lease(db: Session, acta_uuid: str, usuario_id: str) -> Envio:
        if crud.get_acta_by_uuid(db, acta_uuid) is None:
            return Envio(ResultadoOperacion.no_encontrada)
        hasta = LeaseService.extend(db, acta_uuid, usuario_id)
        if hasta is None:
            return Envio(ResultadoOperacion.no_es_titular)
        return Envio(ResultadoOperacion.ok, uuid=acta_uuid, bloqueado_hasta=hasta)

    @staticmethod
    def release(db: Session, acta_uuid: str, usuario_id: str) -> Envio:
        acta = crud.get_acta_by_uuid(db, acta_uuid)
        if acta is None:
            return Envio(ResultadoOperacion.no_encontrada)
        if acta.bloqueado_por != usuario_id:
            return Envio(ResultadoOperacion.no_es_titular)
        LeaseService.release(db, acta_uuid, usuario_id)
        logger.info(f"{usuario_id} abandonó el acta {acta.id}")
        return Envio(ResultadoOperacion.ok, uuid=acta_uuid)

    @staticmethod
    def pending(db: Session, usuario_id: str) -> Optional[Acta]:
        return LeaseService.held_by(db, usuario_id)
