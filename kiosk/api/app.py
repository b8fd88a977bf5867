"""
Kiosk engine - FastAPI application factory.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kiosk.application.kiosk_facade import KioskFacade
from kiosk.core.exceptions import KioskError, ValidationError
from kiosk.loggers import logger

from .routes import router
from .websocket import ConnectionHub


def create_app(facade: Optional[KioskFacade] = None) -> FastAPI:
    """
    Build the HTTP application around a kiosk facade.

    Args:
        facade: Engine to serve; built from settings when omitted.
    """
    kiosk = facade or KioskFacade()
    hub = ConnectionHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        kiosk.notifier.register_handler(hub.broadcast)
        await kiosk.start()
        yield
        await kiosk.shutdown()
        kiosk.notifier.unregister_handler(hub.broadcast)

    app = FastAPI(
        title="Coin Kiosk",
        description="Coin intake, wireless upload sessions and payment confirmation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.facade = kiosk
    app.state.hub = hub

    @app.exception_handler(KioskError)
    async def kiosk_error_handler(request: Request, exc: KioskError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        logger.warning(f"{request.method} {request.url.path} rejected: {message}")
        error = ValidationError(message)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.websocket("/ws")
    async def realtime(websocket: WebSocket):
        await hub.serve(websocket)

    app.include_router(router)
    return app
