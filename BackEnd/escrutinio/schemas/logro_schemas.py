from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from escrutinio.enums.enums import TipoLogro


class LogroOut(BaseModel):
    id: int
    tipo: TipoLogro
    valor_objetivo: int
    nombre: str
    descripcion: str
    icono: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LogroConEstado(LogroOut):
    obtenido: bool = False
    obtenido_en: Optional[datetime] = None


class LogrosUsuarioOut(BaseModel):
    logros: List[LogroConEstado]
    total_obtenidos: int


class RachaRequest(BaseModel):
    valor: int = Field(..., ge=0, description="Validaciones consecutivas en la sesión actual")
