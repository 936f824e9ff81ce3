from fastapi.routing import APIRouter

from community_search.web.api import embed, monitoring, search, services

api_router = APIRouter()
api_router.include_router(monitoring.router)
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(embed.router, prefix="/embed", tags=["embed"])
api_router.include_router(services.router, prefix="/services", tags=["services"])
