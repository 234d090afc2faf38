# main.py
import logging
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from energy_tracker.auth import verify_user
from energy_tracker.config import Settings, configure_logging
from energy_tracker.errors import (
    BackendUnavailable,
    ConflictError,
    EngineError,
    NotFoundError,
    ValidationFailed,
)
from energy_tracker.models import DeviceInput
from energy_tracker.service import EnergyService, create_firestore_service

_LOGGER = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationFailed: 422,
    NotFoundError: 404,
    ConflictError: 409,
    BackendUnavailable: 503,
}


def get_service(request: Request) -> EnergyService:
    return request.app.state.service


# ---------------- APP SETUP ----------------
def create_app(service: EnergyService | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or (service.settings if service else Settings.from_env())
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "service", None) is None:
            app.state.service = create_firestore_service(settings)
        await app.state.service.start()
        yield
        await app.state.service.close()

    app = FastAPI(title="Energy Tracker Backend", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EngineError)
    async def handle_engine_error(request: Request, ex: EngineError):
        status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(ex, cls)), 500
        )
        if status >= 500:
            _LOGGER.error(f"{request.method} {request.url.path} failed: {ex}")
        return JSONResponse(status_code=status, content={"detail": ex.message})

    @app.get("/")
    def root():
        return {"status": "Backend running"}

    # ---------------- CATALOG ----------------
    @app.get("/categories")
    async def list_categories(svc: EnergyService = Depends(get_service)):
        return await svc.catalog.list_categories()

    @app.get("/devices/presets")
    async def list_presets(category_id: int | None = None,
                           svc: EnergyService = Depends(get_service)):
        return await svc.catalog.list_preset_devices(category_id)

    # ---------------- USER DEVICES ----------------
    @app.get("/devices")
    async def list_devices(uid=Depends(verify_user), svc: EnergyService = Depends(get_service)):
        return await svc.catalog.list_user_devices(uid)

    @app.get("/devices/{device_id}")
    async def get_device(device_id: str, uid=Depends(verify_user),
                         svc: EnergyService = Depends(get_service)):
        return await svc.catalog.get_device(device_id, uid)

    @app.post("/devices")
    async def add_device(payload: DeviceInput, uid=Depends(verify_user),
                         svc: EnergyService = Depends(get_service)):
        device_id = await svc.catalog.claim_or_create_device(
            uid,
            payload.category_id,
            payload.manufacturer,
            payload.model,
            payload.power_consumption,
            payload.usage_hours_per_day,
        )
        return {"device_id": device_id}

    @app.put("/devices/{device_id}")
    async def edit_device(device_id: str, payload: DeviceInput, uid=Depends(verify_user),
                          svc: EnergyService = Depends(get_service)):
        await svc.catalog.update_device(
            device_id,
            uid,
            payload.category_id,
            payload.manufacturer,
            payload.model,
            payload.power_consumption,
            payload.usage_hours_per_day,
        )
        return {"message": "Device updated"}

    @app.delete("/devices/{device_id}")
    async def remove_device(device_id: str, uid=Depends(verify_user),
                            svc: EnergyService = Depends(get_service)):
        await svc.catalog.delete_device(device_id, uid)
        return {"message": "Device deleted"}

    # ---------------- CONSUMPTION ----------------
    @app.post("/consumption/init")
    async def init_consumption(uid=Depends(verify_user),
                               svc: EnergyService = Depends(get_service)):
        return await svc.initialize_user(uid)

    @app.post("/consumption/sample")
    async def record_sample(uid=Depends(verify_user), svc: EnergyService = Depends(get_service)):
        now = svc.now()
        value = await svc.aggregation.record_hour_sample(uid, hour=now.hour, day=now.date())
        return {"date": now.date(), "hour": now.hour, "consumption": value}

    @app.get("/consumption/daily")
    async def daily(start: date, end: date, uid=Depends(verify_user),
                    svc: EnergyService = Depends(get_service)):
        return await svc.get_range(uid, start, end)

    @app.get("/consumption/weekly")
    async def weekly(start: date, end: date, uid=Depends(verify_user),
                     svc: EnergyService = Depends(get_service)):
        return await svc.get_weekly(uid, start, end)

    @app.get("/consumption/monthly")
    async def monthly(start: date, end: date, uid=Depends(verify_user),
                      svc: EnergyService = Depends(get_service)):
        return await svc.get_monthly(uid, start, end)

    @app.get("/consumption/hourly")
    async def hourly(day: date = Query(...), uid=Depends(verify_user),
                     svc: EnergyService = Depends(get_service)):
        return {"date": day, "hourly_consumption": await svc.aggregation.get_hourly(uid, day)}

    return app


app = create_app()
