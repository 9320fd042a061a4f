"""
Módulo de modelos ORM para base de datos.

Define todas las tablas y relaciones del núcleo de verificación de actas
usando SQLAlchemy ORM.

Estructura:
    - Mixins: TimestampMixin para creado_en/actualizado_en
    - Actas: Acta, HistorialDigitacion
    - Verificación: Validacion, Discrepancia, CorreccionConsenso
    - Usuarios: EstadisticaUsuario, HistorialUsuarioEstado
    - Logros: Logro, UsuarioLogro

Los usuarios viven en el proveedor de identidad externo; aquí solo se
guarda su identificador opaco (`sub` del token) como texto.
"""

from sqlalchemy import (
    Boolean, Column, Integer, SmallInteger, String, Text, DateTime,
    ForeignKey, Index, CheckConstraint, UniqueConstraint, PrimaryKeyConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy import Enum as SqlEnum

from escrutinio.db.database import Base
from escrutinio.enums.enums import (
    EstadoActa, EstadoUsuario, TipoCambio, TipoDiscrepancia, TipoLogro
)
from escrutinio.services.utils import ahora, nuevo_uuid

# Longitud de los identificadores externos de usuario (UUID del proveedor)
USUARIO_ID_LEN = 64


# =========================================================
# MIXINS - Campos comunes
# =========================================================

class TimestampMixin:
    """
    Mixin para agregar campos de timestamp automáticos.

    Campos:
        - creado_en: Cuándo se creó el registro (inmutable)
        - actualizado_en: Cuándo se actualizó por última vez
    """
    creado_en = Column(DateTime, default=ahora, nullable=False)
    actualizado_en = Column(DateTime, default=ahora, onupdate=ahora, nullable=False)


# =========================================================
# ACTAS
# =========================================================

class Acta(Base, TimestampMixin):
    """
    Registro principal de cada acta electoral.

    Campos de identidad:
        - id: Identificador interno
        - cne_id: Identificador estable del organismo electoral
        - uuid: Token opaco usado en URLs; se regenera en cada envío para
          invalidar enlaces compartidos

    Campos de votos:
        - votos_*_oficial: Reportados por la fuente oficial (inmutables)
        - votos_*_digitado: Valores actuales tras digitación y correcciones
        - votos_total_*: Suma de los siete campos, calculada al escribir

    Flujo de trabajo:
        - estado: EstadoActa
        - digitado_por / digitado_en: Primer digitador
        - valores_por: Autor de los valores actualmente guardados
        - cantidad_validaciones / cantidad_validaciones_correctas

    Bloqueo (lease):
        - bloqueado_por / bloqueado_hasta; un vencimiento nulo o pasado
          significa acta libre sin importar el titular
    """
    __tablename__ = "acta"

    id = Column(Integer, primary_key=True, index=True)
    cne_id = Column(String(32), unique=True, nullable=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False, default=nuevo_uuid)

    # Ubicación geográfica (claves opacas)
    departamento_codigo = Column(SmallInteger, nullable=True)
    municipio_codigo = Column(SmallInteger, nullable=True)
    centro_codigo = Column(SmallInteger, nullable=True)
    jrv_numero = Column(SmallInteger, nullable=True)

    escrutada_en_cne = Column(Boolean, default=False, nullable=False)
    tiene_imagen = Column(Boolean, default=False, nullable=False)

    # Votos oficiales
    votos_pn_oficial = Column(Integer, nullable=True)
    votos_plh_oficial = Column(Integer, nullable=True)
    votos_pl_oficial = Column(Integer, nullable=True)
    votos_pinu_oficial = Column(Integer, nullable=True)
    votos_dc_oficial = Column(Integer, nullable=True)
    votos_nulos_oficial = Column(Integer, nullable=True)
    votos_blancos_oficial = Column(Integer, nullable=True)
    votos_total_oficial = Column(Integer, nullable=True)

    # Votos digitados
    votos_pn_digitado = Column(Integer, nullable=True)
    votos_plh_digitado = Column(Integer, nullable=True)
    votos_pl_digitado = Column(Integer, nullable=True)
    votos_pinu_digitado = Column(Integer, nullable=True)
    votos_dc_digitado = Column(Integer, nullable=True)
    votos_nulos_digitado = Column(Integer, nullable=True)
    votos_blancos_digitado = Column(Integer, nullable=True)
    votos_total_digitado = Column(Integer, nullable=True)

    # Estado y flujo de trabajo
    estado = Column(
        SqlEnum(EstadoActa, name="estado_acta"),
        default=EstadoActa.pendiente,
        nullable=False
    )
    digitado_por = Column(String(USUARIO_ID_LEN), nullable=True)
    digitado_en = Column(DateTime, nullable=True)
    valores_por = Column(String(USUARIO_ID_LEN), nullable=True)

    # Bloqueo distribuido
    bloqueado_por = Column(String(USUARIO_ID_LEN), nullable=True)
    bloqueado_hasta = Column(DateTime, nullable=True)

    # Contadores desnormalizados
    cantidad_validaciones = Column(Integer, default=0, nullable=False)
    cantidad_validaciones_correctas = Column(Integer, default=0, nullable=False)

    validaciones = relationship(
        "Validacion",
        back_populates="acta",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    discrepancias = relationship(
        "Discrepancia",
        back_populates="acta",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        Index("acta_disponible_idx", "estado", "bloqueado_hasta"),
        Index("acta_para_validar_idx", "estado", "cantidad_validaciones"),
        Index("acta_bloqueado_por_idx", "bloqueado_por"),
        UniqueConstraint(
            "departamento_codigo", "municipio_codigo", "centro_codigo", "jrv_numero",
            name="acta_jrv_unique"
        ),
        CheckConstraint(
            "cantidad_validaciones_correctas <= cantidad_validaciones",
            name="check_acta_correctas_le_total"
        ),
        CheckConstraint("cantidad_validaciones >= 0", name="check_acta_validaciones_positivas"),
    )

    def __repr__(self):
        return f"<Acta(id={self.id}, cne_id={self.cne_id}, estado={self.estado})>"


class HistorialDigitacion(Base):
    """
    Auditoría de cambios de valores de un acta.

    Cada digitación, corrección de validador o rectificación por consenso
    deja un registro con los valores establecidos.
    """
    __tablename__ = "historial_digitacion"

    id = Column(Integer, primary_key=True, index=True)
    acta_id = Column(Integer, ForeignKey("acta.id", ondelete="CASCADE"), nullable=False, index=True)
    usuario_id = Column(String(USUARIO_ID_LEN), nullable=False, index=True)
    tipo_cambio = Column(SqlEnum(TipoCambio, name="tipo_cambio"), nullable=False)

    votos_pn = Column(Integer, nullable=True)
    votos_plh = Column(Integer, nullable=True)
    votos_pl = Column(Integer, nullable=True)
    votos_pinu = Column(Integer, nullable=True)
    votos_dc = Column(Integer, nullable=True)
    votos_nulos = Column(Integer, nullable=True)
    votos_blancos = Column(Integer, nullable=True)
    votos_total = Column(Integer, nullable=True)

    comentario = Column(Text, nullable=True)
    creado_en = Column(DateTime, default=ahora, nullable=False)


# =========================================================
# VERIFICACIÓN
# =========================================================

class Validacion(Base):
    """
    Registro de cada validación de un acta.

    Un usuario valida un acta una sola vez (clave primaria compuesta).
    Guarda los valores que el validador confirmó o escribió para poder
    calcular el consenso al llegar al quórum.

    Campos:
        - es_correcto: La validación coincidió con los valores guardados
        - corrigio_a: Usuario penalizado provisionalmente por esta corrección
    """
    __tablename__ = "validacion"

    acta_id = Column(Integer, ForeignKey("acta.id", ondelete="CASCADE"), nullable=False)
    usuario_id = Column(String(USUARIO_ID_LEN), nullable=False)

    es_correcto = Column(Boolean, nullable=False)

    votos_pn = Column(Integer, nullable=False)
    votos_plh = Column(Integer, nullable=False)
    votos_pl = Column(Integer, nullable=False)
    votos_pinu = Column(Integer, nullable=False)
    votos_dc = Column(Integer, nullable=False)
    votos_nulos = Column(Integer, nullable=False)
    votos_blancos = Column(Integer, nullable=False)
    votos_total = Column(Integer, nullable=False)

    corrigio_a = Column(String(USUARIO_ID_LEN), nullable=True)
    comentario = Column(Text, nullable=True)
    creado_en = Column(DateTime, default=ahora, nullable=False)

    acta = relationship("Acta", back_populates="validaciones")

    __table_args__ = (
        PrimaryKeyConstraint("acta_id", "usuario_id", name="validacion_pk"),
        Index("validacion_usuario_idx", "usuario_id"),
    )


class Discrepancia(Base):
    """
    Reportes de problemas con actas (ilegible, adulterada, etc).

    Tanto digitadores como validadores pueden reportar, una vez por acta.
    Al acumular REPORT_THRESHOLD reportes el acta sale del pool (bajo_revision).
    """
    __tablename__ = "discrepancia"

    id = Column(Integer, primary_key=True, index=True)
    acta_id = Column(Integer, ForeignKey("acta.id", ondelete="CASCADE"), nullable=False, index=True)
    usuario_id = Column(String(USUARIO_ID_LEN), nullable=False, index=True)

    tipo = Column(SqlEnum(TipoDiscrepancia, name="tipo_discrepancia"), nullable=False)
    descripcion = Column(Text, nullable=True)

    resuelta = Column(Boolean, default=False, nullable=False)
    resuelta_por = Column(String(USUARIO_ID_LEN), nullable=True)
    resolucion_comentario = Column(Text, nullable=True)
    resuelta_en = Column(DateTime, nullable=True)

    creado_en = Column(DateTime, default=ahora, nullable=False)

    acta = relationship("Acta", back_populates="discrepancias")

    __table_args__ = (
        UniqueConstraint("acta_id", "usuario_id", name="discrepancia_usuario_unique"),
    )


class CorreccionConsenso(Base):
    """
    Correcciones cargadas al cerrar el consenso de un acta.

    Una fila por usuario penalizado en la reconciliación (validadores que
    difieren del consenso y digitador original). Si el acta se reabre por un
    baneo, estas correcciones se revierten y las filas se eliminan.
    """
    __tablename__ = "correccion_consenso"

    id = Column(Integer, primary_key=True, index=True)
    acta_id = Column(Integer, ForeignKey("acta.id", ondelete="CASCADE"), nullable=False, index=True)
    usuario_id = Column(String(USUARIO_ID_LEN), nullable=False)
    creado_en = Column(DateTime, default=ahora, nullable=False)


# =========================================================
# USUARIOS
# =========================================================

class EstadisticaUsuario(Base):
    """
    Contadores por usuario y estado de moderación.

    Se crea de forma perezosa con la primera contribución (upsert) y solo
    se modifica con incrementos en el lugar. Nunca se elimina, ni siquiera
    al banear al usuario.

    Contadores:
        - actas_digitadas, actas_validadas, validaciones_correctas
        - discrepancias_reportadas
        - correcciones_recibidas: veces que el consenso sobrescribió sus valores

    Moderación:
        - estado: EstadoUsuario
        - estado_cambiado_en, razon_estado
        - conteo_advertencias, ultima_advertencia_en
        - estado_bloqueado_por_admin: impide transiciones automáticas
    """
    __tablename__ = "estadistica_usuario"

    usuario_id = Column(String(USUARIO_ID_LEN), primary_key=True)

    actas_digitadas = Column(Integer, default=0, nullable=False)
    actas_validadas = Column(Integer, default=0, nullable=False)
    validaciones_correctas = Column(Integer, default=0, nullable=False)
    discrepancias_reportadas = Column(Integer, default=0, nullable=False)
    correcciones_recibidas = Column(Integer, default=0, nullable=False)

    estado = Column(
        SqlEnum(EstadoUsuario, name="estado_usuario"),
        default=EstadoUsuario.activo,
        nullable=False
    )
    estado_cambiado_en = Column(DateTime, nullable=True)
    razon_estado = Column(Text, nullable=True)
    conteo_advertencias = Column(Integer, default=0, nullable=False)
    ultima_advertencia_en = Column(DateTime, nullable=True)
    estado_bloqueado_por_admin = Column(Boolean, default=False, nullable=False)

    perfil_privado = Column(Boolean, default=False, nullable=False)
    onboarding_completado = Column(Boolean, default=False, nullable=False)

    primera_actividad = Column(DateTime, nullable=True)
    ultima_actividad = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("estadistica_validadas_idx", "actas_validadas"),
        Index("estadistica_estado_idx", "estado"),
    )

    def __repr__(self):
        return f"<EstadisticaUsuario(usuario_id={self.usuario_id}, estado={self.estado})>"


class HistorialUsuarioEstado(Base):
    """
    Bitácora append-only de cambios de estado de moderación.

    Guarda la foto de las estadísticas que disparó el cambio y si fue
    automático o de un moderador. Nunca se actualiza ni se borra.
    """
    __tablename__ = "historial_usuario_estado"

    id = Column(Integer, primary_key=True, index=True)
    usuario_id = Column(
        String(USUARIO_ID_LEN),
        ForeignKey("estadistica_usuario.usuario_id"),
        nullable=False,
        index=True
    )
    estado_anterior = Column(SqlEnum(EstadoUsuario, name="estado_usuario"), nullable=False)
    estado_nuevo = Column(SqlEnum(EstadoUsuario, name="estado_usuario"), nullable=False)
    razon = Column(Text, nullable=True)

    validaciones_totales = Column(Integer, nullable=False)
    correcciones_recibidas = Column(Integer, nullable=False)
    porcentaje_acierto = Column(Integer, nullable=True)

    es_automatico = Column(Boolean, default=True, nullable=False)
    modificado_por = Column(String(USUARIO_ID_LEN), nullable=True)
    creado_en = Column(DateTime, default=ahora, nullable=False)


# =========================================================
# LOGROS
# =========================================================

class Logro(Base):
    """Hito que se otorga al alcanzar `valor_objetivo` en un contador."""
    __tablename__ = "logro"

    id = Column(Integer, primary_key=True, index=True)
    tipo = Column(SqlEnum(TipoLogro, name="tipo_logro"), nullable=False, index=True)
    valor_objetivo = Column(Integer, nullable=False)
    nombre = Column(String(100), nullable=False)
    descripcion = Column(Text, nullable=False)
    icono = Column(String(16), nullable=True)
    orden = Column(Integer, default=0, nullable=False)
    creado_en = Column(DateTime, default=ahora, nullable=False)

    __table_args__ = (
        UniqueConstraint("tipo", "valor_objetivo", name="logro_tipo_valor_unique"),
    )


class UsuarioLogro(Base):
    """Logro obtenido por un usuario; único por (usuario, logro)."""
    __tablename__ = "usuario_logro"

    id = Column(Integer, primary_key=True, index=True)
    usuario_id = Column(String(USUARIO_ID_LEN), nullable=False, index=True)
    logro_id = Column(Integer, ForeignKey("logro.id", ondelete="CASCADE"), nullable=False)
    valor_alcanzado = Column(Integer, nullable=True)
    obtenido_en = Column(DateTime, default=ahora, nullable=False)

    logro = relationship("Logro")

    __table_args__ = (
        UniqueConstraint("usuario_id", "logro_id", name="usuario_logro_unique"),
    )
