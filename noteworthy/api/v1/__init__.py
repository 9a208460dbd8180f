"""V1 API router aggregation."""

from fastapi import APIRouter

from noteworthy.api.v1.ai_configs import router as ai_configs_router
from noteworthy.api.v1.ai_index import router as ai_index_router
from noteworthy.api.v1.notes import router as notes_router
from noteworthy.api.v1.search import router as search_router
from noteworthy.api.v1.stats import router as stats_router
from noteworthy.api.v1.system import router as system_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(search_router)
v1_router.include_router(notes_router)
v1_router.include_router(ai_index_router)
v1_router.include_router(ai_configs_router)
v1_router.include_router(stats_router)
v1_router.include_router(system_router)
