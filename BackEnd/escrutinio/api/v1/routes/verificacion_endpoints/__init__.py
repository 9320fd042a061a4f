from fastapi import APIRouter
from .asignacion import router as asignacion_router
from .envios import router as envios_router
from .bloqueo import router as bloqueo_router

router = APIRouter()
router.include_router(asignacion_router)
router.include_router(envios_router)
router.include_router(bloqueo_router)
