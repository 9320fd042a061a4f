import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrutinio.db.database import get_db
from escrutinio.enums.enums import TipoLogro
from escrutinio.schemas.logro_schemas import LogroOut, LogrosUsuarioOut, RachaRequest
from escrutinio.services.achievement_service import AchievementService
from escrutinio.services.auth_service import Contribuyente, get_current_contributor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/logros", tags=["logros"])


@router.get("", response_model=LogrosUsuarioOut)
def list_achievements(
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    """Catálogo completo de logros marcando los obtenidos por el usuario."""
    return AchievementService.list_with_status(db, user.id)


@router.post("/racha", response_model=List[LogroOut])
def report_session_streak(
    data: RachaRequest,
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    """
    Registrar la racha de la sesión actual.

    La racha vive en el cliente; aquí solo se otorgan los logros alcanzados.
    """
    otorgados = AchievementService.check_and_grant(db, user.id, TipoLogro.racha_sesion, data.valor)
    return [LogroOut.model_validate(l) for l in otorgados]
