from fastapi import APIRouter
from kpi_portal.routers import kpis, kpi_reviews, rating_settings

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(kpis.router)
api_router.include_router(kpi_reviews.router)
api_router.include_router(rating_settings.router)
