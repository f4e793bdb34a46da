from fastapi import APIRouter

from app.api.v1.routers import docusign, health, phone_verification

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(docusign.router)
api_router.include_router(phone_verification.router)

__all__ = ["api_router"]
