import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from escrutinio.core.config import settings
from escrutinio.models.models import Acta
from escrutinio.services.utils import ahora

logger = logging.getLogger(__name__)


def lease_free_or_own(usuario_id: str, now: datetime):
    """Predicado SQL: bloqueo ausente, vencido o ya del usuario."""
    return or_(
        Acta.bloqueado_hasta.is_(None),
        Acta.bloqueado_hasta < now,
        Acta.bloqueado_por == usuario_id,
    )


def lease_held_by(usuario_id: str, now: datetime):
    """Predicado SQL: el usuario tiene un bloqueo vigente."""
    return and_(Acta.bloqueado_por == usuario_id, Acta.bloqueado_hasta > now)


class LeaseService:
    """
    Bloqueos temporales y exclusivos sobre actas.

    Cada operación es un único UPDATE condicional; la atomicidad por fila de
    la base de datos decide quién gana. Un rechazo es un resultado normal
    (None/False), nunca una excepción. El vencimiento se evalúa al leer.
    """

    @staticmethod
    def _duracion() -> timedelta:
        return timedelta(minutes=settings.LOCK_DURATION_MINUTES)

    @staticmethod
    def acquire(db: Session, acta_uuid: str, usuario_id: str) -> Optional[datetime]:
        """
        Tomar el bloqueo de un acta.

        Funciona si el acta está libre, vencida o ya es del usuario (en ese
        caso extiende). Devuelve el nuevo vencimiento o None si otro usuario
        la tiene.
        """
        now = ahora()
        hasta = now + LeaseService._duracion()
        result = db.execute(
            update(Acta)
            .where(Acta.uuid == acta_uuid, lease_free_or_own(usuario_id, now))
            .values(bloqueado_por=usuario_id, bloqueado_hasta=hasta, actualizado_en=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()

        if result.rowcount != 1:
            logger.info(f"Bloqueo rechazado para {usuario_id} en acta {acta_uuid}")
            return None
        return hasta

    @staticmethod
    def extend(db: Session, acta_uuid: str, usuario_id: str) -> Optional[datetime]:
        """Extender un bloqueo vigente; solo el titular actual puede hacerlo."""
        now = ahora()
        hasta = now + LeaseService._duracion()
        result = db.execute(
            update(Acta)
            .where(Acta.uuid == acta_uuid, lease_held_by(usuario_id, now))
            .values(bloqueado_hasta=hasta, actualizado_en=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()

        if result.rowcount != 1:
            return None
        return hasta

    @staticmethod
    def release(db: Session, acta_uuid: str, usuario_id: Optional[str] = None) -> bool:
        """
        Liberar el bloqueo de un acta.

        Con usuario_id solo libera si es el titular; sin él libera siempre
        (limpieza administrativa).
        """
        condiciones = [Acta.uuid == acta_uuid]
        if usuario_id is not None:
            condiciones.append(Acta.bloqueado_por == usuario_id)

        result = db.execute(
            update(Acta)
            .where(*condiciones)
            .values(bloqueado_por=None, bloqueado_hasta=None, actualizado_en=ahora())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    @staticmethod
    def held_by(db: Session, usuario_id: str) -> Optional[Acta]:
        """Acta con bloqueo vigente del usuario, si tiene alguna."""
        return (
            db.query(Acta)
            .filter(lease_held_by(usuario_id, ahora()))
            .order_by(Acta.bloqueado_hasta.desc())
            .first()
        )

    @staticmethod
    def needs_refresh(bloqueado_hasta: Optional[datetime], now: Optional[datetime] = None) -> bool:
        """True cuando quedan menos de LOCK_REFRESH_THRESHOLD_MINUTES de bloqueo."""
        if bloqueado_hasta is None:
            return False
        now = now or ahora()
        return bloqueado_hasta - now < timedelta(minutes=settings.LOCK_REFRESH_THRESHOLD_MINUTES)
