"""
FastAPI application implementing a minimal Esri GeoServices REST API.

Endpoints implemented:
- /rest/info
- /rest/health
- /rest/services
- /rest/services/{service_id}/FeatureServer
- /rest/services/{service_id}/FeatureServer/{layer_id}
- /rest/services/{service_id}/FeatureServer/{layer_id}/query

The service_id maps to a configured service, and layer_id maps to
a Parquet dataset within that service (0-indexed, config order).
"""

import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from parquet_geo.query.catalog import get_config, list_services
from parquet_geo.query.engine import EngineConnection, QueryExecutor
from parquet_geo.query.errors import ParquetGeoError

from .routes import feature_server

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title="Parquet GeoServices",
    description="Esri GeoServices REST API backed by DuckDB over Parquet",
    root_path=os.environ.get("ROOT_PATH", ""),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def log_request_timing(request: Request, call_next):
    """Log request timing for performance monitoring."""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start
    # Only log query requests (the slow path) at INFO level
    path = request.url.path
    if "/query" in path or elapsed > 1.0:
        logger.info(
            "%s %s → %d (%.2fs)",
            request.method,
            request.url,
            response.status_code,
            elapsed,
        )
    return response


@app.exception_handler(ParquetGeoError)
async def query_error_handler(request: Request, exc: ParquetGeoError):
    """Esri-style error body; the shared connection stays usable."""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    else:
        logger.info("Rejected %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.status_code,
                "message": str(exc),
                "details": [type(exc).__name__],
            }
        },
    )


@app.on_event("startup")
async def start_engine() -> None:
    """Kick off DuckDB initialization without blocking startup."""
    if getattr(app.state, "connection", None) is None:
        settings = get_config().engine
        app.state.connection = EngineConnection(settings)
        app.state.executor = QueryExecutor(app.state.connection, settings.query_timeout)
    app.state.connection.start()


@app.on_event("shutdown")
def stop_engine() -> None:
    connection = getattr(app.state, "connection", None)
    if connection is not None:
        connection.close()


app.include_router(feature_server.router, prefix="/rest/services")


@app.get("/rest/info")
@app.post("/rest/info")
async def rest_info():
    """ArcGIS REST service directory info."""
    services = [{"name": name, "type": "FeatureServer"} for name in list_services()]
    return {
        "currentVersion": 11.0,
        "fullVersion": "11.0.0",
        "owningSystemUrl": "",
        "authInfo": {"isTokenBasedSecurity": False},
        "services": services,
    }


@app.get("/rest/services")
@app.post("/rest/services")
async def services_directory():
    """Services directory — lists all available FeatureServer services."""
    services = [{"name": name, "type": "FeatureServer"} for name in list_services()]
    return {
        "currentVersion": 11.0,
        "services": services,
    }


@app.get("/rest/health")
async def health(request: Request):
    """Readiness of the DuckDB connection (503 until it is ready)."""
    connection = getattr(request.app.state, "connection", None)
    state = connection.state.value if connection is not None else "uninitialized"
    body = {"status": state}
    if connection is not None and connection.error is not None:
        body["error"] = str(connection.error)
    status_code = 200 if connection is not None and connection.is_ready else 503
    return JSONResponse(status_code=status_code, content=body)
