"""
Router de envíos sobre actas.

Endpoints:
    - POST /verificacion/{uuid}/digitalizacion
    - POST /verificacion/{uuid}/validacion
    - POST /verificacion/{uuid}/reporte

Todos exigen el uuid vigente del acta; tras un envío exitoso el uuid rota
y la respuesta incluye el nuevo.

Códigos:
    - 404: acta no encontrada (o uuid ya rotado)
    - 403: el bloqueo venció o es de otro usuario
    - 409: acta ya procesada por el usuario o en estado no válido
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrutinio.db.database import get_db
from escrutinio.schemas.acta_schemas import (
    DigitalizacionRequest, OperacionOut, ReporteRequest, ValidacionRequest
)
from escrutinio.services.acta_service import ActaService
from escrutinio.services.auth_service import Contribuyente, get_current_contributor
from .respuestas import http_errors, operacion_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verificacion", tags=["verificacion"])


@router.post("/{uuid}/digitalizacion", response_model=OperacionOut)
def submit_digitization(
    uuid: str,
    data: DigitalizacionRequest,
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    with http_errors("submit_digitization"):
        envio = ActaService.submit_digitization(db, uuid, user.id, data.valores.as_tuple())
        ActaService.raise_for(envio.resultado)
        return operacion_out(envio)


@router.post("/{uuid}/validacion", response_model=OperacionOut)
def submit_validation(
    uuid: str,
    data: ValidacionRequest,
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    """
    Validar un acta: confirmar los valores actuales o enviar los corregidos.

    Escribir exactamente los valores actuales cuenta como confirmación.
    """
    with http_errors("submit_validation"):
        envio = ActaService.submit_validation(
            db,
            uuid,
            user.id,
            confirmar_correcto=data.confirmar_correcto,
            valores=data.valores.as_tuple() if data.valores else None,
            comentario=data.comentario,
        )
        ActaService.raise_for(envio.resultado)
        return operacion_out(envio)


@router.post("/{uuid}/reporte", response_model=OperacionOut)
def report_problem(
    uuid: str,
    data: ReporteRequest,
    db: Session = Depends(get_db),
    user: Contribuyente = Depends(get_current_contributor)
):
    with http_errors("report_problem"):
        envio = ActaService.report_problem(db, uuid, user.id, data.tipo, data.descripcion)
        ActaService.raise_for(envio.resultado)
        return operacion_out(envio)
