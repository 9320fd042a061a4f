import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrutinio.db.database import get_db
from escrutinio.schemas.acta_schemas import BloqueoOut
from escrutinio.services.acta_service import ActaService
from escrutinio.services.auth_service import Contribuyente, get_current_contributor
from escrutinio.services.lease_service import LeaseService
from .respuestas import http_errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verificacion", tags=["verificacion"])


# =========================================================
# 🔒 Renovar bloqueo
# =========================================================

@router.post("/{uuid}/bloqueo", response_model=BloqueoOut)
def refresh_lease(
    uuid: str,
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    """
    Extender el bloqueo del acta otros LOCK_DURATION_MINUTES.

    El cliente lo llama cuando quedan menos de LOCK_REFRESH_THRESHOLD_MINUTES.
    """
    with http_errors("refresh_lease"):
        envio = ActaService.refresh_lease(db, uuid, user.id)
        ActaService.raise_for(envio.resultado)
        return BloqueoOut(
            resultado=envio.resultado,
            bloqueado_hasta=envio.bloqueado_hasta,
            necesita_renovar=LeaseService.needs_refresh(envio.bloqueado_hasta),
        )


# =========================================================
# 🔓 Abandonar acta
# =========================================================

@router.delete("/{uuid}/bloqueo", response_model=BloqueoOut)
def release_lease(
    uuid: str,
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    with http_errors("release_lease"):
        envio = ActaService.release(db, uuid, user.id)
        ActaService.raise_for(envio.resultado)
        return BloqueoOut(resultado=envio.resultado)
