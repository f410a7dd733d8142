from fastapi import APIRouter

from backend.config import APP_ENV, SERVICE_VERSION

router = APIRouter()


@router.get("/meta")
async def meta():
    return {"service": "smarthome", "api": "v1", "status": "ok", "version": SERVICE_VERSION}


if APP_ENV != "prod":
    @router.get("/_test/validation")
    async def validation_test(value: int):
        return {"received": value}
