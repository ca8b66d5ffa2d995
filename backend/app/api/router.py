from fastapi import APIRouter

from app.api.routes import streams

api_router = APIRouter()
api_router.include_router(streams.router, prefix="/streams", tags=["streams"])
