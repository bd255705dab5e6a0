from __future__ import annotations
from contextlib import asynccontextmanager
from time import perf_counter

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .db import init_db
from .utils.logger import get_logger, setup_logging
from .routers import analysis

setup_logging()
logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("DB initialized")
    yield
    logger.info("Shutting down Pattern Inspector API")


app = FastAPI(title="Pattern Inspector API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
def root() -> dict:
    return {
        "message": "Pattern Inspector API",
        "endpoints": [
            "/analysis/validate",
            "/analysis/upload",
            "/analysis/status/{job_id}",
            "/analysis/result?job_id=...",
            "/analysis/summary?job_id=...",
            "/analysis/parents?job_id=...",
            "/analysis/patterns?job_id=...",
            "/analysis/patterns/{pattern_id}?job_id=...",
            "/analysis/pattern-errors?job_id=...",
            "/analysis/locations?job_id=...",
            "/analysis/locations/{location_id}?job_id=...",
            "/analysis/export/json?job_id=...",
            "/analysis/runs",
            "/analysis/runs/latest",
            "/analysis/config",
        ],
        "docs": "/docs",
    }


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = perf_counter()
    client = request.client.host if request.client else "-"
    try:
        response = await call_next(request)
        duration = (perf_counter() - start) * 1000
        logger.info(
            f"{client} {request.method} {request.url.path} -> {response.status_code} ({duration:.1f} ms)"
        )
        return response
    except Exception as e:  # noqa: BLE001
        duration = (perf_counter() - start) * 1000
        logger.exception(
            f"Exception on {request.method} {request.url.path} after {duration:.1f} ms: {e}"
        )
        raise


app.include_router(analysis.router)


if __name__ == "__main__":
    import uvicorn
    # Run directly with the app object to avoid import path issues
    uvicorn.run(app, host="0.0.0.0", port=8010)
