from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lms.api.admin import router as admin_router
from lms.api.catalog import router as catalog_router
from lms.api.certificates import router as certificates_router
from lms.api.events import router as events_router
from lms.api.health import router as health_router
from lms.api.me import router as me_router
from lms.api.metrics_endpoint import router as metrics_router
from lms.api.quizzes import router as quizzes_router
from lms.api.webhooks import router as webhooks_router
from lms.core.config import SETTINGS
from lms.core.errors import install_error_handlers
from lms.core.logging import setup_logging
from lms.db.engine import lifespan_db
from lms.db.redis import lifespan_redis
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # torn down in reverse order
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="lms-api",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted({"http://localhost:3000", SETTINGS.app_base_url}),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext → Metrics → CORS → route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

install_error_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(catalog_router)
app.include_router(me_router)
app.include_router(quizzes_router)
app.include_router(certificates_router)
app.include_router(events_router)
app.include_router(webhooks_router)
app.include_router(admin_router)

logger.info(
    "lms-api started  env=%s log_level=%s port=%d docs=%s enforce=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "on" if SETTINGS.entitlements_enforce else "off",
)
