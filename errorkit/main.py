from __future__ import annotations

import logging

from fastapi import FastAPI

from errorkit.api.example import router as example_router
from errorkit.core.settings import Settings, get_settings
from errorkit.handlers import bind_trace_id, register_exception_handlers


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="errorkit example API")

    app.middleware("http")(bind_trace_id)
    register_exception_handlers(app, settings)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(example_router)

    logger.debug(
        "Exception handling: enabled=%s stack_trace=%s max_lines=%d",
        settings.enabled,
        settings.include_stack_trace,
        settings.max_stack_trace_lines,
    )
    return app


app = create_app()
