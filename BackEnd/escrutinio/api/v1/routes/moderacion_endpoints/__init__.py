from fastapi import APIRouter
from .estado import router as estado_router
from .logros import router as logros_router

router = APIRouter()
router.include_router(estado_router)
router.include_router(logros_router)
