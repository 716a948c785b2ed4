import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .db import Base, engine
from .deps import NO_STORE
from .logging_setup import setup_logging
from .settings import settings
from .routers import health
from .routers import auth
from .routers import stats
from .routers import dashboard
from .routers import tasks
from .routers import test_periods
from .routers import students

logger = logging.getLogger(__name__)

app = FastAPI(title="Study Task Tracker API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(stats.router)
app.include_router(dashboard.router)
app.include_router(tasks.router)
app.include_router(test_periods.router)
app.include_router(students.router)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
	logger.exception("database error on %s %s", request.method, request.url.path)
	return JSONResponse(status_code=500, content={"detail": "Internal Server Error"}, headers=NO_STORE)


@app.get("/info")
def info():
	return {"status": "ok", "timezone": settings.local_timezone}


@app.on_event("startup")
async def startup_event():
	setup_logging(settings.log_level)
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	logger.info("schema ready on %s", engine.url.render_as_string(hide_password=True))
