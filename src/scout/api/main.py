from __future__ import annotations

from datetime import UTC, datetime
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.auth import router as auth_router
from .routers.scout import router as scout_router
from .routers.uploads import router as uploads_router
from ..domain.errors import RateLimited, ScoutError
from ..observability.metrics import metrics_middleware_factory

load_dotenv()  # Load environment variables from .env if present (JWT_SECRET, OPENAI_API_KEY, ...)

app = FastAPI(title="Scout Gateway API", version="0.1.0")

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(auth_router)
app.include_router(scout_router)
app.include_router(uploads_router)

# CORS (for the portal dev server on localhost:3000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ScoutError)
async def scout_error_handler(request: Request, exc: ScoutError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.get("/")
def root():
    return {"name": "Scout Gateway API", "version": "0.1.0"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
    }


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
