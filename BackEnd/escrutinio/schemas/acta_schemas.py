from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from escrutinio.schemas.logro_schemas import LogroOut
from escrutinio.enums.enums import (
    EstadoActa, ModoVerificacion, ResultadoOperacion, TipoDiscrepancia
)

# =========================================================
# Valores de votos
# =========================================================

class VoteValues(BaseModel):
    """Los siete conteos de un acta. El total se calcula, nunca se recibe."""
    pn: int = Field(..., ge=0, description="Partido Nacional")
    plh: int = Field(..., ge=0, description="Partido Libertad y Refundación")
    pl: int = Field(..., ge=0, description="Partido Liberal")
    pinu: int = Field(..., ge=0, description="PINU-SD")
    dc: int = Field(..., ge=0, description="Democracia Cristiana")
    nulos: int = Field(..., ge=0, description="Votos nulos")
    blancos: int = Field(..., ge=0, description="Votos en blanco")

    model_config = ConfigDict(extra="forbid")

    @computed_field
    @property
    def total(self) -> int:
        return self.pn + self.plh + self.pl + self.pinu + self.dc + self.nulos + self.blancos

    def as_tuple(self) -> Tuple[int, ...]:
        return (self.pn, self.plh, self.pl, self.pinu, self.dc, self.nulos, self.blancos)

    @classmethod
    def from_tuple(cls, valores) -> "VoteValues":
        pn, plh, pl, pinu, dc, nulos, blancos = valores
        return cls(pn=pn, plh=plh, pl=pl, pinu=pinu, dc=dc, nulos=nulos, blancos=blancos)


# =========================================================
# Esquemas de entrada
# =========================================================

class AsignacionRequest(BaseModel):
    modo: ModoVerificacion = Field(..., description="digitalizar o validar")


class DigitalizacionRequest(BaseModel):
    valores: VoteValues


class ValidacionRequest(BaseModel):
    """
    Validación de un acta.

    - confirmar_correcto=True: el validador confirma los valores guardados
    - confirmar_correcto=False: `valores` trae los siete conteos corregidos
    """
    confirmar_correcto: bool = Field(..., description="Confirma los valores actuales")
    valores: Optional[VoteValues] = Field(default=None, description="Valores corregidos")
    comentario: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _valores_requeridos_si_corrige(self):
        if not self.confirmar_correcto and self.valores is None:
            raise ValueError("Se requieren los valores corregidos cuando no se confirma el acta")
        return self


class ReporteRequest(BaseModel):
    tipo: TipoDiscrepancia
    descripcion: Optional[str] = Field(default=None, max_length=2000)


# =========================================================
# Esquemas de salida
# =========================================================

class ActaOut(BaseModel):
    uuid: str
    cne_id: Optional[str] = None
    departamento_codigo: Optional[int] = None
    municipio_codigo: Optional[int] = None
    centro_codigo: Optional[int] = None
    jrv_numero: Optional[int] = None
    estado: EstadoActa
    escrutada_en_cne: bool
    tiene_imagen: bool
    valores: Optional[VoteValues] = Field(None, description="Valores actuales (digitados u oficiales)")
    cantidad_validaciones: int
    cantidad_validaciones_correctas: int
    bloqueado_hasta: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AsignacionOut(BaseModel):
    resultado: ResultadoOperacion
    modo: Optional[ModoVerificacion] = None
    acta: Optional[ActaOut] = None


class OperacionOut(BaseModel):
    """Respuesta de envíos (digitalización, validación, reporte)."""
    resultado: ResultadoOperacion
    estado: Optional[EstadoActa] = None
    uuid: Optional[str] = Field(None, description="Nuevo uuid del acta tras el envío")
    cantidad_validaciones: Optional[int] = None
    cantidad_validaciones_correctas: Optional[int] = None
    logros_obtenidos: List[LogroOut] = Field(default_factory=list)


class BloqueoOut(BaseModel):
    resultado: ResultadoOperacion
    bloqueado_hasta: Optional[datetime] = None
    necesita_renovar: bool = False
