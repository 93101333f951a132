"""API router aggregator."""
from fastapi import APIRouter

from bookworm_auth.api.routes import admin, auth, users

api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(admin.router)


@api_router.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


__all__ = ["api_router"]
