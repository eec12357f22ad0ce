from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tariffstack.api.routes_tariff_stack import router as tariff_stack_router
from tariffstack.observability import RUN_ID_HEADER, log_event, run_scope
from tariffstack.tariff.programs import get_duty_program_registry
from tariffstack.version import __version__

# -----------------------------------------------------------------------------
# App setup
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configuration errors are fatal here, never per request.
    registry = get_duty_program_registry()
    logger.info(
        "Duty program registry ready: %d programs from %s",
        len(registry.programs),
        registry.source,
    )
    app.state.registry_source = registry.source
    yield
    app.state.registry_source = None


app = FastAPI(title="tariffstack API", version="v1", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(tariff_stack_router)


@app.middleware("http")
async def attach_run_id(request: Request, call_next):
    with run_scope(request.headers.get(RUN_ID_HEADER)) as run_id:
        log_event("request.start", path=str(request.url.path), method=request.method)
        response = await call_next(request)
        response.headers[RUN_ID_HEADER] = run_id
        log_event(
            "request.end",
            path=str(request.url.path),
            method=request.method,
            status_code=response.status_code,
        )
        return response


def _normalize_validation_errors(raw_errors: List[Dict[str, Any]]) -> Dict[str, Any]:
    fields: List[Dict[str, str]] = []
    for err in raw_errors:
        loc = err.get("loc", [])
        loc_parts = [str(part) for part in loc if part != "body"]
        path = ".".join(["request", *loc_parts]) if loc_parts else "request"
        message = str(err.get("msg", "Invalid request"))
        if message.lower().startswith("value error, "):
            message = message.split(", ", 1)[1]
        fields.append({"path": path, "message": message})
    return {"error": "VALIDATION_ERROR", "fields": fields}


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content=_normalize_validation_errors(exc.errors()))


@app.exception_handler(ValidationError)
async def handle_pydantic_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content=_normalize_validation_errors(exc.errors()))


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"ok": True, "status": "ok", "version": __version__}


@app.get("/v1/health")
def health_v1() -> Dict[str, Any]:
    return health()
