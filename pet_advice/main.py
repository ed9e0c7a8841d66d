from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pet_advice.api.routes import router as api_router
from pet_advice.core.logging_config import configure_logging
from pet_advice.core.runtime import Services, build_services
from pet_advice.core.settings import load_settings


def create_app(services: Optional[Services] = None) -> FastAPI:
    resolved = services or build_services(load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await resolved.start()
        try:
            yield
        finally:
            await resolved.stop()

    app = FastAPI(title="pet-advice-service", version="v1", lifespan=lifespan)
    app.state.services = resolved
    app.add_middleware(
        CORSMiddleware,
        allow_origins=resolved.settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)
    return app


def build_app() -> FastAPI:
    settings = load_settings()
    configure_logging(settings.log_level)
    return create_app(build_services(settings))
