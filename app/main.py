import app.db.base  # noqa: F401
import app.models  # noqa: F401

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.errors import DomainError
from app.api.http_errors import domain_exception_handler
from app.api.routes.health import router as health_router
from app.api.routes.me import router as me_router
from app.api.routes.users import router as users_router

from fastapi import Request
from fastapi.responses import PlainTextResponse
import traceback
from app.api.routes.friends import router as friends_router

from app.api.routes.messages import router as messages_router
from app.api.routes.posts import router as posts_router

from app.api.routes.realtime import router as realtime_router
from app.realtime.bus import EventBus


logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
app = FastAPI(title="Social Graph API", version="0.1.0")

# Room registry for live connections; handed to services as their notifier.
app.state.event_bus = EventBus()

local_cors_origin_regex = (
    r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
    if settings.env in {"local", "test"}
    else None
)

for _exc_type in DomainError:
    app.add_exception_handler(_exc_type, domain_exception_handler)

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
app.include_router(me_router)
app.include_router(users_router)
app.include_router(friends_router)
app.include_router(messages_router)
app.include_router(posts_router)
app.include_router(realtime_router)
