"""
Router de asignación de trabajo.

Entrega a cada usuario un acta para digitalizar o validar, bloqueada a su
nombre por LOCK_DURATION_MINUTES, y permite retomar el acta pendiente.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrutinio.db.database import get_db
from escrutinio.enums.enums import ResultadoOperacion
from escrutinio.schemas.acta_schemas import AsignacionOut, AsignacionRequest
from escrutinio.services.acta_service import ActaService
from escrutinio.services.assignment_service import AssignmentService, modo_de
from escrutinio.services.auth_service import Contribuyente, get_current_contributor
from .respuestas import acta_out, http_errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verificacion", tags=["verificacion"])


# =========================================================
# 🎯 Solicitar asignación
# =========================================================

@router.post("/asignar", response_model=AsignacionOut)
def request_assignment(
    data: AsignacionRequest,
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    """
    Solicitar un acta para trabajar.

    Respuestas:
        - **asignada**: acta nueva bloqueada para el usuario
        - **pendiente**: el usuario ya tenía un acta bloqueada; se devuelve esa
        - **sin_actas**: no hay trabajo disponible ahora mismo
        - 403 si el usuario está baneado, 503 en mantenimiento
    """
    with http_errors("request_assignment"):
        asignacion = AssignmentService.assign(db, user.id, data.modo)
        ActaService.raise_for(asignacion.resultado)

        if asignacion.acta is None:
            return AsignacionOut(resultado=asignacion.resultado, modo=asignacion.modo)
        return AsignacionOut(
            resultado=asignacion.resultado,
            modo=asignacion.modo,
            acta=acta_out(asignacion.acta),
        )


# =========================================================
# ⏳ Acta pendiente
# =========================================================

@router.get("/pendiente", response_model=AsignacionOut)
def get_pending(
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    """Acta con bloqueo vigente del usuario, para retomar el trabajo."""
    with http_errors("get_pending"):
        acta = ActaService.pending(db, user.id)
        if acta is None:
            return AsignacionOut(resultado=ResultadoOperacion.sin_actas)
        return AsignacionOut(resultado=ResultadoOperacion.pendiente, modo=modo_de(acta), acta=acta_out(acta))
