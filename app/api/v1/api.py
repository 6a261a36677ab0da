from fastapi import APIRouter
from app.api.v1.routes.public import router as public_router
from app.api.v1.routes.reservations import router as reservations_router
from app.api.v1.routes.notifications import router as notifications_router
from app.api.v1.routes.admin import router as admin_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(public_router)
api_router.include_router(reservations_router)
api_router.include_router(notifications_router)
api_router.include_router(admin_router)
