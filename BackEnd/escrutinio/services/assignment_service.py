import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, exists, func, or_
from sqlalchemy.orm import Session

from escrutinio.core.config import settings
from escrutinio.db.crud import crud
from escrutinio.enums.enums import (
    ESTADOS_FUERA_DEL_POOL, EstadoUsuario, ModoVerificacion, ResultadoOperacion
)
from escrutinio.models.models import Acta, Discrepancia, Validacion
from escrutinio.services.lease_service import LeaseService, lease_free_or_own
from escrutinio.services.utils import ahora

logger = logging.getLogger(__name__)


@dataclass
class Asignacion:
    resultado: ResultadoOperacion
    acta: Optional[Acta] = None
    modo: Optional[ModoVerificacion] = None
    bloqueado_hasta: Optional[datetime] = None


def modo_de(acta: Acta) -> ModoVerificacion:
    """Modo de trabajo que corresponde a un acta ya bloqueada."""
    if not acta.escrutada_en_cne and acta.digitado_por is None:
        return ModoVerificacion.digitalizar
    return ModoVerificacion.validar


class AssignmentService:

    @staticmethod
    def _candidata_digitalizar(db: Session, usuario_id: str) -> Optional[Acta]:
        now = ahora()
        return (
            db.query(Acta)
            .filter(
                Acta.escrutada_en_cne.is_(False),
                Acta.digitado_por.is_(None),
                lease_free_or_own(usuario_id, now),
            )
            .order_by(func.random())
            .limit(1)
            .first()
        )

    @staticmethod
    def _candidata_validar(db: Session, usuario_id: str) -> Optional[Acta]:
        now = ahora()
        ya_validada = exists().where(
            and_(Validacion.acta_id == Acta.id, Validacion.usuario_id == usuario_id)
        )
        ya_reportada = exists().where(
            and_(Discrepancia.acta_id == Acta.id, Discrepancia.usuario_id == usuario_id)
        )
        return (
            db.query(Acta)
            .filter(
                Acta.tiene_imagen.is_(True),
                Acta.cantidad_validaciones < settings.VALIDATION_QUORUM,
                Acta.estado.notin_(ESTADOS_FUERA_DEL_POOL),
                or_(Acta.digitado_por.is_(None), Acta.digitado_por != usuario_id),
                lease_free_or_own(usuario_id, now),
                ~ya_validada,
                ~ya_reportada,
            )
            .order_by(func.random())
            .limit(1)
            .first()
        )

    @staticmethod
    def assign(db: Session, usuario_id: str, modo: ModoVerificacion) -> Asignacion:
        """
        Asignar un acta al usuario para digitalizar o validar.

        Orden de decisión:
            1. Usuario baneado: BANEADO
            2. Bloqueo vigente del usuario: se devuelve esa acta (PENDIENTE)
            3. Modo mantenimiento: MANTENIMIENTO
            4. Selección aleatoria + bloqueo, con reintentos si otro usuario
               gana el bloqueo entre la selección y el UPDATE
            5. Sin candidatas: SIN_ACTAS
        """
        estadistica = crud.get_estadistica(db, usuario_id)
        if estadistica and estadistica.estado == EstadoUsuario.baneado:
            logger.info(f"Asignación denegada a usuario baneado {usuario_id}")
            return Asignacion(resultado=ResultadoOperacion.baneado)

        pendiente = LeaseService.held_by(db, usuario_id)
        if pendiente:
            return Asignacion(
                resultado=ResultadoOperacion.pendiente,
                acta=pendiente,
                modo=modo_de(pendiente),
                bloqueado_hasta=pendiente.bloqueado_hasta,
            )

        if settings.ACTAS_MAINTENANCE:
            return Asignacion(resultado=ResultadoOperacion.mantenimiento)

        seleccionar = (
            AssignmentService._candidata_digitalizar
            if modo == ModoVerificacion.digitalizar
            else AssignmentService._candidata_validar
        )

        for intento in range(1, settings.ASSIGNMENT_MAX_ATTEMPTS + 1):
            candidata = seleccionar(db, usuario_id)
            if candidata is None:
                break

            hasta = LeaseService.acquire(db, candidata.uuid, usuario_id)
            if hasta is not None:
                db.refresh(candidata)
                logger.info(f"Acta {candidata.id} asignada a {usuario_id} para {modo.value}")
                return Asignacion(
                    resultado=ResultadoOperacion.asignada,
                    acta=candidata,
                    modo=modo,
                    bloqueado_hasta=hasta,
                )
            logger.info(f"Intento {intento}: acta {candidata.id} tomada por otro usuario, reintentando")

        return Asignacion(resultado=ResultadoOperacion.sin_actas, modo=modo)
