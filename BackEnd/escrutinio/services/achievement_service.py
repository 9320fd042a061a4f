import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from escrutinio.enums.enums import TipoLogro
from escrutinio.models.models import Logro, UsuarioLogro
from escrutinio.schemas.logro_schemas import LogroConEstado, LogrosUsuarioOut

logger = logging.getLogger(__name__)


class AchievementService:
    """Otorga hitos a partir de contadores acumulados."""

    @staticmethod
    def check_and_grant(db: Session, usuario_id: str, tipo: TipoLogro, valor: int) -> List[Logro]:
        """
        Otorgar los logros de `tipo` con objetivo <= valor que el usuario
        aún no tiene.

        La restricción única (usuario_id, logro_id) hace la operación
        idempotente: si otra petición otorgó el mismo logro primero, ese
        logro simplemente no aparece en la lista devuelta.
        """
        obtenidos = (
            db.query(UsuarioLogro.logro_id)
            .filter(UsuarioLogro.usuario_id == usuario_id)
        )
        pendientes = (
            db.query(Logro)
            .filter(
                Logro.tipo == tipo,
                Logro.valor_objetivo <= valor,
                Logro.id.notin_(obtenidos),
            )
            .order_by(Logro.valor_objetivo.asc())
            .all()
        )

        otorgados = []
        for logro in pendientes:
            logro_id = logro.id
            db.add(UsuarioLogro(usuario_id=usuario_id, logro_id=logro_id, valor_alcanzado=valor))
            try:
                db.commit()
                otorgados.append(logro)
            except IntegrityError:
                db.rollback()
                logger.info(f"Logro {logro_id} ya otorgado a {usuario_id}")

        if otorgados:
            logger.info(f"{usuario_id} obtuvo {len(otorgados)} logro(s) de {tipo.value}")
        return otorgados

    @staticmethod
    def safe_check_and_grant(db: Session, usuario_id: str, tipo: TipoLogro, valor: int) -> List[Logro]:
        try:
            return AchievementService.check_and_grant(db, usuario_id, tipo, valor)
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to check achievements for {usuario_id}: {e}")
            return []

    @staticmethod
    def list_with_status(db: Session, usuario_id: str) -> LogrosUsuarioOut:
        obtenidos = {
            ul.logro_id: ul.obtenido_en
            for ul in db.query(UsuarioLogro).filter(UsuarioLogro.usuario_id == usuario_id).all()
        }
        logros = [
            LogroConEstado(
                id=l.id,
                tipo=l.tipo,
                valor_objetivo=l.valor_objetivo,
                nombre=l.nombre,
                descripcion=l.descripcion,
                icono=l.icono,
                obtenido=l.id in obtenidos,
                obtenido_en=obtenidos.get(l.id),
            )
            for l in db.query(Logro).order_by(Logro.orden.asc()).all()
        ]
        return LogrosUsuarioOut(logros=logros, total_obtenidos=len(obtenidos))
