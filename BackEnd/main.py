"""
Punto de entrada principal de la aplicación FastAPI.

API del núcleo de verificación ciudadana de actas: asignación de trabajo
con bloqueos temporales, consenso de validaciones, moderación automática
y logros.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from escrutinio.core.config import settings
from escrutinio.db.database import Base, engine, SessionLocal
from escrutinio.api.v1.routes.verificacion_endpoints import router as verificacion_router
from escrutinio.api.v1.routes.moderacion_endpoints import router as moderacion_router
from escrutinio.core.init_logros import init_logros

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("escrutinio")


def initialize_database():
    """
    Inicializa la base de datos creando tablas y el catálogo de logros.

    Utiliza create_all con checkfirst=True para evitar recrear tablas
    existentes; init_logros solo inserta los logros que faltan.
    """
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("✅ Tablas de base de datos verificadas/creadas")

        with SessionLocal() as db:
            creados = init_logros(db)
            logger.info(f"✅ Catálogo de logros listo ({creados} nuevos)")

    except Exception as e:
        logger.error(f"❌ Error al inicializar la base de datos: {e}")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestiona el ciclo de vida de la aplicación.

    Args:
        app (FastAPI): Instancia de la aplicación.
    """
    logger.info("🚀 Iniciando aplicación...")
    initialize_database()
    if settings.ACTAS_MAINTENANCE:
        logger.warning("🛠️ Modo mantenimiento activo: no se asignan actas nuevas")
    yield
    logger.info("🛑 Cerrando aplicación...")


# Crear instancia FastAPI
app = FastAPI(
    title="Escrutinio Ciudadano - Verificación de Actas",
    description="API del núcleo de digitalización, validación y moderación de actas",
    version="1.0.0",
    lifespan=lifespan
)


# Incluir routers de endpoints
app.include_router(verificacion_router, prefix="/api/v1")
app.include_router(moderacion_router, prefix="/api/v1")


# Configurar middleware CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    """
    Endpoint raíz para verificar que la API está funcionando.

    Returns:
        dict: Estado de la aplicación.
    """
    return {
        "status": "ok",
        "message": "Escrutinio Ciudadano API",
        "version": "1.0.0",
        "maintenance": settings.ACTAS_MAINTENANCE,
    }
