"""
Script de inicialización de base de datos.

Crea la estructura de tablas e inserta el catálogo de logros que el
rastreador de logros necesita para otorgar hitos.

Funcionalidad:
    - Crear todas las tablas de base de datos
    - Sembrar el catálogo de logros (idempotente)

Uso:
    python -m escrutinio.core.init_logros

    O desde código:
    from escrutinio.core.init_logros import init_logros, main
    main()

Notas:
    - Seguro de ejecutar en cada arranque
    - En producción, usar migrations con Alembic
"""

import logging

from sqlalchemy.orm import Session

from escrutinio.db.database import SessionLocal, engine, Base
from escrutinio.enums.enums import TipoLogro
from escrutinio.models.models import Logro

logger = logging.getLogger(__name__)


LOGROS_CATALOGO = [
    # Validaciones totales
    (TipoLogro.validaciones_totales, 1, "El Primer Vistazo", "Valida tu primera acta e inicia la participación.", "👁️"),
    (TipoLogro.validaciones_totales, 10, "Doble Dígito", "Supera las 10 validaciones iniciales.", "🔟"),
    (TipoLogro.validaciones_totales, 50, "Comprometido", "50 validaciones completadas. Compromiso demostrado.", "✅"),
    (TipoLogro.validaciones_totales, 100, "Maestro del Escrutinio", "100 actas validadas. Enfoque de alta precisión.", "🔪"),
    (TipoLogro.validaciones_totales, 250, "La Vara de Medir", "250 validaciones. Establece el estándar de calidad.", "📐"),
    (TipoLogro.validaciones_totales, 500, "Haciendo Historia", "¡500 actas! Dejas una marca ineludible.", "📜"),
    (TipoLogro.validaciones_totales, 750, "Héroe de las Actas", "Valida 750 actas y salva el conteo.", "🦸"),
    (TipoLogro.validaciones_totales, 1000, "Inmortal del Conteo", "1,000 actas. Tu leyenda en el sistema es permanente.", "🛡️"),
    (TipoLogro.validaciones_totales, 1500, "Semidiós del Voto", "1,500 actas. Un paso de la deidad.", "✨"),
    (TipoLogro.validaciones_totales, 2500, "Dios del escrutinio", "2,500 actas, dedicación divina.", "👼"),

    # Racha en sesión
    (TipoLogro.racha_sesion, 10, "Café Cargado", "10 actas sin levantarte. ¡El café está haciendo efecto!", "☕"),
    (TipoLogro.racha_sesion, 20, "El Filtro Automático", "20 validaciones seguidas. Mente en modo \"piloto automático\".", "🤖"),
    (TipoLogro.racha_sesion, 30, "El Flujo del Escrutinio", "¡30! Estás en la zona donde el tiempo se detiene.", "🧘"),
    (TipoLogro.racha_sesion, 40, "Visión Láser", "40 actas sin pestañear. ¡Más rápido que el internet!", "💥"),
    (TipoLogro.racha_sesion, 50, "La Máquina del Tipeo", "50 actas seguidas. ¡Eres más rápido que el CNE!", "⌨️"),

    # Reportes
    (TipoLogro.reportes_totales, 5, "Vigilante", "Reporta 5 problemas de datos.", "🚨"),
    (TipoLogro.reportes_totales, 10, "Protector", "Reporta 10 problemas con éxito.", "👑"),
    (TipoLogro.reportes_totales, 20, "Guardián", "Reporta 20 errores. Proteges la base de datos.", "🔑"),
    (TipoLogro.reportes_totales, 25, "Defensor", "Reporta 25 problemas. Defiendes la integridad cívica.", "🎖️"),
]


def init_logros(db: Session) -> int:
    """
    Sembrar el catálogo de logros.

    Idempotente: un logro se identifica por (tipo, valor_objetivo) y solo se
    inserta si no existe.

    Args:
        db (Session): Sesión de base de datos SQLAlchemy

    Returns:
        int: Cantidad de logros creados en esta llamada

    Raises:
        Exception: Si hay error en la BD durante commit
    """
    existentes = {(l.tipo, l.valor_objetivo) for l in db.query(Logro).all()}
    creados = 0

    for orden, (tipo, valor, nombre, descripcion, icono) in enumerate(LOGROS_CATALOGO, start=1):
        if (tipo, valor) in existentes:
            continue
        db.add(Logro(
            tipo=tipo,
            valor_objetivo=valor,
            nombre=nombre,
            descripcion=descripcion,
            icono=icono,
            orden=orden,
        ))
        creados += 1

    try:
        db.commit()
        logger.info(f"Logros initialized successfully ({creados} nuevos)")
    except Exception as e:
        db.rollback()
        logger.error(f"Error initializing logros: {e}")
        raise
    return creados


def main():
    """Crear tablas si no existen y sembrar los logros."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        init_logros(db)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
