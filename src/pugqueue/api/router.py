"""Main API router."""

from fastapi import APIRouter

from pugqueue.api.access import router as access_router
from pugqueue.api.lobbies import router as lobbies_router

api_router = APIRouter()
api_router.include_router(lobbies_router)
api_router.include_router(access_router)
