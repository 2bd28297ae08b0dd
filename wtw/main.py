import wtw.db.base  # noqa: F401
import wtw.models  # noqa: F401

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi_mcp import FastApiMCP

from wtw.core.config import settings
from wtw.core.logging_config import configure_logging
from wtw.api.routes.health import router as health_router
from wtw.api.routes.history import router as history_router
from wtw.api.routes.realtime import router as realtime_router
from wtw.api.routes.sessions import router as sessions_router
from wtw.api.routes.votes import router as votes_router

configure_logging(settings.log_level)

logger = logging.getLogger(__name__)
app = FastAPI(title="WTW API", version="0.1.0")

local_cors_origin_regex = (
    r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
    if settings.env in {"local", "test"}
    else None
)

@app.exception_handler(Exception)
async def debug_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception for %s %s", request.method, request.url.path)
    if settings.env in {"local", "test"}:
        return PlainTextResponse(
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            status_code=500,
        )
    return PlainTextResponse("Internal Server Error", status_code=500)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_origin_regex=local_cors_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(sessions_router)
app.include_router(votes_router)
app.include_router(history_router)
app.include_router(realtime_router)

mcp = FastApiMCP(app)
mcp.mount_http()
