from enum import Enum


class EstadoActa(str, Enum):
    pendiente = "pendiente"                # Recién ingresada, sin digitalizar
    digitada = "digitada"                  # Digitalizada, pendiente de validación
    en_validacion = "en_validacion"        # Al menos 1 validación, menos de 3
    validada = "validada"                  # 2 de 3 validaciones coinciden
    con_discrepancia = "con_discrepancia"  # Sin consenso tras 3 validaciones
    bajo_revision = "bajo_revision"        # Sacada del pool por reportes


# Estados fuera del pool de validación
ESTADOS_FUERA_DEL_POOL = (EstadoActa.bajo_revision, EstadoActa.con_discrepancia)


class EstadoUsuario(str, Enum):
    """Escalera de moderación; el orden de declaración es el de severidad."""
    activo = "activo"
    advertido = "advertido"
    restringido = "restringido"
    baneado = "baneado"

    @property
    def nivel(self) -> int:
        return _ORDEN_ESTADOS.index(self)

    def __lt__(self, other):
        if not isinstance(other, EstadoUsuario):
            return NotImplemented
        return self.nivel < other.nivel

    def __le__(self, other):
        if not isinstance(other, EstadoUsuario):
            return NotImplemented
        return self.nivel <= other.nivel

    def __gt__(self, other):
        if not isinstance(other, EstadoUsuario):
            return NotImplemented
        return self.nivel > other.nivel

    def __ge__(self, other):
        if not isinstance(other, EstadoUsuario):
            return NotImplemented
        return self.nivel >= other.nivel


_ORDEN_ESTADOS = list(EstadoUsuario)


class ModoVerificacion(str, Enum):
    digitalizar = "digitalizar"
    validar = "validar"


class TipoDiscrepancia(str, Enum):
    ilegible = "ilegible"
    adulterada = "adulterada"
    datos_inconsistentes = "datos_inconsistentes"
    imagen_incompleta = "imagen_incompleta"
    valores_incorrectos = "valores_incorrectos"
    otro = "otro"


class TipoCambio(str, Enum):
    digitacion_inicial = "digitacion_inicial"
    correccion_validador = "correccion_validador"
    rectificacion = "rectificacion"


class TipoLogro(str, Enum):
    validaciones_totales = "validaciones_totales"
    reportes_totales = "reportes_totales"
    racha_sesion = "racha_sesion"


class ResultadoOperacion(str, Enum):
    """Resultados tipados que el núcleo devuelve en lugar de excepciones."""
    ok = "ok"
    asignada = "asignada"
    pendiente = "pendiente"
    sin_actas = "sin_actas"
    baneado = "baneado"
    mantenimiento = "mantenimiento"
    bloqueo_rechazado = "bloqueo_rechazado"
    no_es_titular = "no_es_titular"
    no_encontrada = "no_encontrada"
    ya_validada = "ya_validada"
    ya_reportada = "ya_reportada"
    ya_digitada = "ya_digitada"
    estado_invalido = "estado_invalido"
