from fastapi import APIRouter
from app.api.v1.endpoints import digiflazz, notifications

router = APIRouter()

router.include_router(digiflazz.router, prefix="/digiflazz", tags=["digiflazz"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
