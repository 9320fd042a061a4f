"""
Módulo de configuración de base de datos.

Este módulo gestiona la conexión a la base de datos: creación del motor
SQLAlchemy, factory de sesiones, base declarativa de modelos y la
inyección de dependencias para FastAPI.

Configuración soportada:
    - SQLite: Desarrollo local y pruebas
    - PostgreSQL: Producción con alta concurrencia

Las operaciones del núcleo (bloqueos, contadores de validación) se
sincronizan únicamente mediante UPDATE condicionales a nivel de fila,
por lo que cualquier motor con escrituras atómicas por fila sirve.

Componentes:
    - engine: Motor SQLAlchemy de conexión
    - SessionLocal: Factory de sesiones
    - Base: Declarative base para modelos ORM
    - get_db: Dependency injection para FastAPI
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from escrutinio.core.config import settings

# =========================================================
#  CONFIGURACIÓN DE CONEXIÓN
# =========================================================

DATABASE_URL = settings.DATABASE_URL

# =========================================================
#  CREACIÓN DEL MOTOR SQLALCHEMY
# =========================================================

engine = create_engine(
    DATABASE_URL,
    # SQLite necesita permitir uso desde varios threads (workers de FastAPI)
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    pool_pre_ping=True,
)

# =========================================================
#  SESIONES DE BASE DE DATOS
# =========================================================

SessionLocal = sessionmaker(
    autocommit=False,  # Transacciones explícitas
    autoflush=False,   # Flush explícito
    bind=engine
)

Base = declarative_base()


# =========================================================
#  DEPENDENCY INJECTION PARA FASTAPI
# =========================================================

def get_db():
    """
    Obtener sesión de base de datos para inyectar en endpoints.

    Crea una sesión nueva por request y la cierra siempre al terminar,
    incluso si el endpoint lanza una excepción.

    Yields:
        Session: Sesión SQLAlchemy lista para usar
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
