"""Top-level router assembly."""

from fastapi import APIRouter

from .runs import render_router
from .runs import router as runs_router


def get_api_router() -> APIRouter:
    api = APIRouter()
    api.include_router(runs_router)
    api.include_router(render_router)
    return api


__all__ = ["get_api_router"]
