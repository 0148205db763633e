from fastapi import APIRouter

from app.api.extract.routes import router as extract_router

router = APIRouter()
router.include_router(extract_router)
