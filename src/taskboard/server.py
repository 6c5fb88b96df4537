from __future__ import annotations

import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from taskboard.api.auth.tokens import TokenIssuer
from taskboard.api.middleware import request_context_middleware
from taskboard.api.models import AuthStore
from taskboard.api.routes_auth import router as auth_router
from taskboard.api.routes_tasks import router as tasks_router
from taskboard.api.schemas import error_messages, validation_failed
from taskboard.config import get_settings
from taskboard.tasks.store import TaskStore
from taskboard.utils.log import logger
from taskboard.utils.ratelimit import RateLimiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    s = get_settings()
    state_root = s.public.resolved_state_dir()
    db_path = state_root / str(s.db_name or "taskboard.db")

    # Tests reuse one process; every boot gets fresh state objects.
    app.state.auth_store = AuthStore(db_path)
    app.state.task_store = TaskStore(db_path)
    app.state.token_issuer = TokenIssuer.from_settings()
    app.state.rate_limiter = RateLimiter()
    logger.info(
        "server_boot",
        db=str(Path(db_path).name),
        production=s.is_production(),
        access_token_minutes=int(s.access_token_minutes),
        rotation_token_days=int(s.rotation_token_days),
    )
    try:
        yield
    finally:
        logger.info("server_shutdown")


app = FastAPI(title="taskboard API", lifespan=lifespan)

# Rotation cookie must reach /auth/refresh from the declared frontend origins only.
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(tasks_router)


@app.exception_handler(RequestValidationError)
async def request_validation_failed(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Query/path parsing errors share the 400 shape used for request bodies.
    err = validation_failed(error_messages(exc))
    return JSONResponse({"detail": err.detail}, status_code=err.status_code)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    t0 = time.perf_counter()
    resp = await call_next(request)
    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=resp.status_code,
        duration_ms=round((time.perf_counter() - t0) * 1000.0, 2),
    )
    return resp


# Registered last so it runs outermost: request ids cover the access log too.
app.middleware("http")(request_context_middleware)


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "TaskManager API is running"


@app.get("/healthz")
async def healthz(request: Request) -> dict[str, object]:
    ready = all(
        getattr(request.app.state, name, None) is not None
        for name in ("auth_store", "task_store", "token_issuer")
    )
    return {"ok": ready}
