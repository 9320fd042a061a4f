"""
Lógica pura de consenso sobre conteos de votos.

Sin acceso a base de datos ni efectos secundarios: recibe tuplas de siete
enteros (orden pn, plh, pl, pinu, dc, nulos, blancos) y decide coincidencias,
estado del acta y valores de consenso. El flujo transaccional que usa estas
funciones vive en acta_service.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from escrutinio.core.config import settings
from escrutinio.enums.enums import EstadoActa

Votos = Tuple[int, ...]

CAMPOS_VOTOS = 7


class ConsensusInvariantError(Exception):
    """Estado imposible del acta (p.ej. validar sin valores guardados)."""
    pass


@dataclass(frozen=True)
class Evaluacion:
    """Resultado de comparar un envío contra los valores guardados."""
    coincide: bool
    valores: Votos

    @property
    def es_correccion(self) -> bool:
        return not self.coincide


@dataclass
class Consenso:
    valores: Optional[Votos]
    coincidentes: List[str] = field(default_factory=list)
    discrepantes: List[str] = field(default_factory=list)


def _check(valores: Optional[Sequence[int]], nombre: str) -> Votos:
    if valores is None:
        raise ConsensusInvariantError(f"{nombre}: no hay valores")
    valores = tuple(valores)
    if len(valores) != CAMPOS_VOTOS:
        raise ConsensusInvariantError(f"{nombre}: se esperaban {CAMPOS_VOTOS} campos, hay {len(valores)}")
    return valores


def values_match(a: Sequence[int], b: Sequence[int]) -> bool:
    """Igualdad exacta de los siete campos, sin tolerancia."""
    return _check(a, "a") == _check(b, "b")


def evaluate_submission(
    stored: Optional[Sequence[int]],
    confirm: bool,
    corrected: Optional[Sequence[int]] = None
) -> Evaluacion:
    """
    Decidir si un envío de validación coincide o corrige.

    - confirm=True: coincide con los valores guardados
    - valores escritos iguales a los guardados: también coincide
    - valores distintos: corrección

    Raises:
        ConsensusInvariantError: si el acta no tiene valores guardados o el
            envío no trae valores cuando no confirma
    """
    stored = _check(stored, "valores guardados")
    if confirm:
        return Evaluacion(coincide=True, valores=stored)

    corrected = _check(corrected, "valores corregidos")
    if corrected == stored:
        return Evaluacion(coincide=True, valores=stored)
    return Evaluacion(coincide=False, valores=corrected)


def decide_status(total: int, matched: int) -> EstadoActa:
    if total < settings.VALIDATION_QUORUM:
        return EstadoActa.en_validacion
    if matched >= settings.CONSENSUS_MIN_MATCHES:
        return EstadoActa.validada
    return EstadoActa.con_discrepancia


def find_consensus(submissions: Sequence[Tuple[str, Sequence[int]]]) -> Consenso:
    """
    Buscar el acuerdo literal de al menos CONSENSUS_MIN_MATCHES envíos.

    Args:
        submissions: pares (usuario_id, valores) en orden de envío

    Returns:
        Consenso con los valores ganadores, quiénes coincidieron y quiénes no.
        Sin mayoría, `valores` es None y nadie figura como discrepante.
    """
    envios = [(usuario, _check(valores, usuario)) for usuario, valores in submissions]
    if not envios:
        return Consenso(valores=None)

    conteo = Counter(valores for _, valores in envios)
    ganador, votos = conteo.most_common(1)[0]
    if votos < settings.CONSENSUS_MIN_MATCHES:
        return Consenso(valores=None)

    # Empate entre dos mayorías: no hay acuerdo literal único
    if sum(1 for n in conteo.values() if n == votos) > 1:
        return Consenso(valores=None)

    return Consenso(
        valores=ganador,
        coincidentes=[u for u, v in envios if v == ganador],
        discrepantes=[u for u, v in envios if v != ganador],
    )
