"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import pixel_runs

api_router = APIRouter()

api_router.include_router(
    pixel_runs.router,
    prefix="/pixel-runs",
    tags=["pixel-runs"]
)
