"""
Guest Mode quota gateway API.

Lets clients without their own API key use the upstream completion API for
free, up to a daily allowance per installation and per device.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

from guest_gateway.core.config import get_database_url, run_migrations_on_startup

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Run Alembic migrations on startup. Uses alembic.ini and DATABASE_URL.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    db_url = get_database_url()
    if not db_url:
        logger.error(
            "DATABASE_URL is not set. Alembic migrations will not run "
            "and every guest request will fail with CONFIG_ERROR."
        )
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", db_url)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise  # Fail startup so DB is not left out of sync


from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from starlette.exceptions import HTTPException as StarletteHTTPException

from guest_gateway.api.routes import guest
from guest_gateway.db.init_db import create_tables, ensure_builtin_roles
from guest_gateway.db.session import engine, SessionLocal


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, run migrations and seed roles. Without a database the
    app still starts, but the guest endpoint fails closed."""
    if engine is None:
        logger.error("No database configured; guest endpoint will return CONFIG_ERROR")
    else:
        create_tables(engine)
        if run_migrations_on_startup():
            run_migrations()
        db = SessionLocal()
        try:
            ensure_builtin_roles(db)
        finally:
            db.close()
    logger.info("Guest gateway started")
    yield
    logger.info("Guest gateway shutting down")


app = FastAPI(title="Guest Mode Quota Gateway", lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    # Methods with no route at all still get the CORS-enabled JSON body
    if exc.status_code == 405:
        return guest.json_response(405, {"error": "Method not allowed"})
    return await http_exception_handler(request, exc)


app.include_router(guest.router, tags=["Guest"])
