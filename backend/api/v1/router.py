from fastapi import APIRouter

from backend.api.v1.routes import (
    auth as auth_routes,
    devices as devices_routes,
    houses as houses_routes,
    meta as meta_routes,
    metrics as metrics_routes,
    rooms as rooms_routes,
)

api_v1_router = APIRouter()

api_v1_router.include_router(meta_routes.router, tags=["meta"])
api_v1_router.include_router(auth_routes.router, prefix="/auth", tags=["auth"])
api_v1_router.include_router(houses_routes.router, tags=["houses"])
api_v1_router.include_router(rooms_routes.router, tags=["rooms"])
api_v1_router.include_router(devices_routes.router, tags=["devices"])
api_v1_router.include_router(metrics_routes.router, tags=["metrics"])
