"""
Router de moderación.

Endpoints:
    - GET /moderacion/estado: banner de moderación del propio usuario
    - PUT /moderacion/usuarios/{usuario_id}/estado: cambio manual (moderador)
    - GET /moderacion/usuarios/{usuario_id}/historial: bitácora de estados (moderador)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from escrutinio.db.database import get_db
from escrutinio.schemas.moderation_schemas import (
    BannerOut, EstadoManualRequest, HistorialEstadoList, HistorialEstadoOut
)
from escrutinio.services.auth_service import Contribuyente, get_current_contributor, require_moderator
from escrutinio.services.moderation_service import ContributorNotFoundError, ModerationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/moderacion", tags=["moderacion"])


@router.get("/estado", response_model=BannerOut)
def get_moderation_banner(
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    """
    Estado de moderación del usuario autenticado.

    Un usuario sin contribuciones aparece como activo y sin precisión.
    """
    banner = ModerationService.get_banner(db, user.id)
    return BannerOut(estado=banner.estado, porcentaje_acierto=banner.porcentaje_acierto, razon=banner.razon)


@router.put("/usuarios/{usuario_id}/estado", response_model=BannerOut)
def set_contributor_state(
    usuario_id: str,
    data: EstadoManualRequest,
    db: Session = Depends(get_db),
    moderator: Contribuyente = Depends(require_moderator)
):
    try:
        ModerationService.set_state_manually(
            db,
            usuario_id,
            data.estado,
            moderador_id=moderator.id,
            razon=data.razon,
            bloquear=data.bloquear,
        )
    except ContributorNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario sin contribuciones registradas")
    except SQLAlchemyError as e:
        logger.error(f"Database error setting state for {usuario_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error de base de datos")

    banner = ModerationService.get_banner(db, usuario_id)
    return BannerOut(estado=banner.estado, porcentaje_acierto=banner.porcentaje_acierto, razon=banner.razon)


@router.get("/usuarios/{usuario_id}/historial", response_model=HistorialEstadoList)
def get_contributor_history(
    usuario_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    moderator: Contribuyente = Depends(require_moderator)
):
    historial = ModerationService.get_history(db, usuario_id, limit=limit)
    return HistorialEstadoList(
        usuario_id=usuario_id,
        historial=[HistorialEstadoOut.model_validate(h) for h in historial],
    )
