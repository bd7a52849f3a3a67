from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from tortoise.contrib.fastapi import register_tortoise

from app import settings
from app.routers import analytics, booking, promo_codes

TORTOISE_CONFIG = {
    "connections": {"default": settings.db_url},
    "apps": {"models": {"models": ["app.models"], "default_connection": "default"}},
    "use_tz": True,
    "timezone": "UTC",
}


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Full detail goes to the log only
        logger.exception(
            "Unhandled error on {} {}", request.method, request.url.path
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "The request could not be processed"},
        )


def create_app() -> FastAPI:
    app = FastAPI(title="Home service bookings", version="1.0.0")
    app.include_router(booking.router)
    app.include_router(promo_codes.router)
    app.include_router(analytics.router)
    install_exception_handlers(app)

    register_tortoise(
        app,
        config=TORTOISE_CONFIG,
        generate_schemas=settings.db_url.startswith("sqlite"),
        add_exception_handlers=True,
    )
    logger.info("Bookings service configured (db={})", settings.db_url.split("://")[0])
    return app


app = create_app()
