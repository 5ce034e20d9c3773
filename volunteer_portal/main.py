import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from volunteer_portal.db import create_tables, get_db_connection
from volunteer_portal.errors import PortalError, error_response
from volunteer_portal.logging_utils import setup_json_logging
from volunteer_portal.notifications.registry import ConnectionRegistry
from volunteer_portal.routes.achievements import router as achievements_router
from volunteer_portal.routes.admin import router as admin_router
from volunteer_portal.routes.shifts import router as shifts_router
from volunteer_portal.routes.signups import router as signups_router
from volunteer_portal.routes.surveys import router as surveys_router
from volunteer_portal.routes.users import router as users_router
from volunteer_portal.scheduler import shutdown_scheduler, start_scheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="volunteer-portal", description="Volunteer shifts, achievements and surveys")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(PortalError, error_response)

app.include_router(shifts_router)
app.include_router(signups_router)
app.include_router(users_router)
app.include_router(achievements_router)
app.include_router(surveys_router)
app.include_router(admin_router)

app.state.db_path = os.getenv("DB_PATH", "volunteer-portal.db")
app.state.scheduler = None


@app.on_event("startup")
def startup():
    setup_json_logging()
    db_path = app.state.db_path
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_db_connection(db_path)
    try:
        create_tables(conn)
    finally:
        conn.close()

    app.state.registry = ConnectionRegistry()
    if os.getenv("SCHEDULER_ENABLED", "1") == "1":
        app.state.scheduler = start_scheduler(app.state.registry)
    logger.info("Volunteer portal started", extra={"db_path": db_path})


@app.on_event("shutdown")
def shutdown():
    shutdown_scheduler(app.state.scheduler)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
