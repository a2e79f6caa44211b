from fastapi import APIRouter

from app.api.routes import diagrams, utils

api_router = APIRouter()
api_router.include_router(utils.router, tags=["utils"])
api_router.include_router(diagrams.router, prefix="/diagrams", tags=["diagrams"])
