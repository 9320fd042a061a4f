"""
Conversión de resultados del núcleo a respuestas HTTP.

Los servicios devuelven resultados tipados (ResultadoOperacion); aquí se
traducen a esquemas de salida o a HTTPException con mensaje en español.
"""

import logging
from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from escrutinio.db.crud import crud
from escrutinio.models.models import Acta
from escrutinio.schemas.acta_schemas import ActaOut, OperacionOut, VoteValues
from escrutinio.schemas.logro_schemas import LogroOut
from escrutinio.services.acta_service import ActaServiceError, Envio

logger = logging.getLogger(__name__)


@contextmanager
def http_errors(operacion: str):
    """Mapear errores de servicio y de base de datos a HTTPException."""
    try:
        yield
    except ActaServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except HTTPException:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database error in {operacion}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error de base de datos")


def acta_out(acta: Acta) -> ActaOut:
    valores = crud.valores_actuales(acta)
    return ActaOut(
        uuid=acta.uuid,
        cne_id=acta.cne_id,
        departamento_codigo=acta.departamento_codigo,
        municipio_codigo=acta.municipio_codigo,
        centro_codigo=acta.centro_codigo,
        jrv_numero=acta.jrv_numero,
        estado=acta.estado,
        escrutada_en_cne=acta.escrutada_en_cne,
        tiene_imagen=acta.tiene_imagen,
        valores=VoteValues.from_tuple(valores) if valores else None,
        cantidad_validaciones=acta.cantidad_validaciones,
        cantidad_validaciones_correctas=acta.cantidad_validaciones_correctas,
        bloqueado_hasta=acta.bloqueado_hasta,
    )


def operacion_out(envio: Envio) -> OperacionOut:
    return OperacionOut(
        resultado=envio.resultado,
        estado=envio.estado,
        uuid=envio.uuid,
        cantidad_validaciones=envio.cantidad_validaciones,
        cantidad_validaciones_correctas=envio.cantidad_validaciones_correctas,
        logros_obtenidos=[LogroOut.model_validate(l) for l in envio.logros],
    )
