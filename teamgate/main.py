import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load env from teamgate/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from teamgate.core.config import settings, validate_config
from teamgate.core.logging import configure_logging
from teamgate.core.middleware.request_id import RequestIdMiddleware
from teamgate.core.validation import validate_env
from teamgate.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from teamgate.api import authz, health, invitations, permissions_admin, plans, roles, teams

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    from teamgate.core.database import create_all_tables
    from teamgate.features.catalog.service import seed_permissions
    from teamgate.features.plans.service import seed_plans

    logger = logging.getLogger("teamgate")
    logger.info("Starting teamgate...")
    import time
    app.state.startup_time = time.time()

    create_all_tables()
    seed_permissions()
    seed_plans()
    try:
        yield
    finally:
        logging.getLogger("teamgate").info("Stopping teamgate...")


app = FastAPI(title="teamgate - team-scoped authorization", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS (adjust origins in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(health.root_router, tags=["health"])
app.include_router(authz.router, tags=["authz"])
app.include_router(teams.router, tags=["teams"])
app.include_router(roles.router, tags=["roles"])
app.include_router(invitations.router, tags=["invitations"])
app.include_router(plans.router, tags=["plans"])
app.include_router(permissions_admin.router, tags=["admin-permissions"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "teamgate.main:app",
        host=os.getenv("TEAMGATE_HOST", "127.0.0.1"),
        port=int(os.getenv("TEAMGATE_PORT", "8000")),
        log_level="info",
    )
