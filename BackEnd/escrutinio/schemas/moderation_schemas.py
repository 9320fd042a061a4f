from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from escrutinio.enums.enums import EstadoUsuario

# =========================================================
# Esquemas de Moderación
# =========================================================

class BannerOut(BaseModel):
    """Estado de moderación visible para el propio usuario."""
    estado: EstadoUsuario
    porcentaje_acierto: Optional[int] = Field(None, ge=0, le=100)
    razon: Optional[str] = None


class EstadoManualRequest(BaseModel):
    estado: EstadoUsuario
    razon: Optional[str] = Field(default=None, max_length=1000)
    bloquear: bool = Field(True, description="Impide transiciones automáticas posteriores")


class HistorialEstadoOut(BaseModel):
    id: int
    usuario_id: str
    estado_anterior: EstadoUsuario
    estado_nuevo: EstadoUsuario
    razon: Optional[str] = None
    validaciones_totales: int
    correcciones_recibidas: int
    porcentaje_acierto: Optional[int] = None
    es_automatico: bool
    modificado_por: Optional[str] = None
    creado_en: datetime

    model_config = ConfigDict(from_attributes=True)


class HistorialEstadoList(BaseModel):
    usuario_id: str
    historial: List[HistorialEstadoOut]
