import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from .assessment_routes import router as assessment_router
from .config import Settings, get_settings
from .db.session import get_engine
from .errors import AssessmentServiceError, MissingFieldsError
from .logging_config import configure_logging


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Qiyas Assessment Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(assessment_router)

settings_snapshot = get_settings()
logger.info("Backend starting with AI gateway: %s", settings_snapshot.ai_gateway_url)
logger.info("AI API key configured: %s", bool(settings_snapshot.ai_api_key))


@app.exception_handler(AssessmentServiceError)
async def assessment_error_handler(request: Request, exc: AssessmentServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.payload(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    if not request.url.path.startswith(assessment_router.prefix):
        return await request_validation_exception_handler(request, exc)
    logger.info("Rejected malformed %s %s: %d validation errors", request.method, request.url.path, len(exc.errors()))
    missing = any(error.get("type") == "missing" for error in exc.errors())
    error = MissingFieldsError() if missing else MissingFieldsError("Invalid request body")
    return await assessment_error_handler(request, error)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return {"status": "ok", "ai_feedback": bool(settings.ai_api_key)}


@app.get("/healthz/database")
def database_health() -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except (RuntimeError, SQLAlchemyError) as exc:
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ok", "dialect": engine.dialect.name}
