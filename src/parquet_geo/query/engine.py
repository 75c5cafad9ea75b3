"""
Core query engine. Owns the shared DuckDB connection and runs the
request pipeline against it.

This is the ONLY place where DuckDB statements are executed.
The GeoServices routes call query_features(); nothing else touches
the connection.
"""

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Any, Mapping, Optional

import duckdb

from .builder import build_statements
from .catalog import EngineSettings
from .errors import ConnectionNotReadyError, ExecutionError
from .models import LayerMetadata
from .params import normalize_params
from .shaper import shape_count, shape_extent, shape_feature_collection
from .sql import quote_identifier, quote_literal

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


class EngineConnection:
    """
    The process-wide DuckDB connection and its readiness state.

    initialize() runs once, off the event loop; until it completes every
    statement fails fast with ConnectionNotReadyError. Statements on the
    shared handle are serialized by a lock.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self.state = ConnectionState.UNINITIALIZED
        self.error: Optional[BaseException] = None
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._cancel_lock = threading.Lock()
        self._running = None
        self._queued = set()
        self._cancelled = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    def _connect(self) -> duckdb.DuckDBPyConnection:
        conn = duckdb.connect()
        try:
            for extension in self.settings.extensions:
                conn.install_extension(extension)
                conn.load_extension(extension)
            if self.settings.threads:
                conn.execute(f"SET threads={int(self.settings.threads)}")
            if self.settings.memory_limit:
                conn.execute(f"SET memory_limit={quote_literal(self.settings.memory_limit)}")
            for key, value in self.settings.settings.items():
                rendered = quote_literal(value) if isinstance(value, str) else value
                conn.execute(f"SET {quote_identifier(key)}={rendered}")
        except Exception:
            conn.close()
            raise
        return conn

    async def initialize(self) -> ConnectionState:
        """Open the connection and load extensions. Never raises."""
        if self.state is ConnectionState.READY:
            return self.state
        try:
            conn = await asyncio.to_thread(self._connect)
        except Exception as e:
            # No caller exists yet to receive this; requests will see FAILED
            self.error = e
            self.state = ConnectionState.FAILED
            logger.exception("Failed to initialize DuckDB")
            return self.state

        self._conn = conn
        self.error = None
        self.state = ConnectionState.READY
        logger.info(
            "DuckDB initialized: extensions loaded (%s)",
            ", ".join(self.settings.extensions) or "none",
        )
        return self.state

    def start(self) -> asyncio.Task:
        """Schedule initialize() on the running loop without waiting for it."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.initialize())
        return self._task

    def ensure_ready(self):
        if self.state is ConnectionState.UNINITIALIZED:
            raise ConnectionNotReadyError("DuckDB connection not initialized")
        if self.state is ConnectionState.FAILED:
            raise ConnectionNotReadyError(
                f"DuckDB connection failed to initialize: {self.error}"
            )

    def run(self, sql: str, token: Optional[object] = None) -> list[tuple]:
        """Execute one statement and fetch all rows (blocking)."""
        self.ensure_ready()
        with self._cancel_lock:
            if token is not None:
                self._queued.add(token)
        try:
            with self._lock:
                # close() may have run while this call waited for the lock
                self.ensure_ready()
                with self._cancel_lock:
                    self._queued.discard(token)
                    if token is not None and token in self._cancelled:
                        raise ExecutionError("Query cancelled before it started")
                    self._running = token
                try:
                    return self._conn.execute(sql).fetchall()
                finally:
                    with self._cancel_lock:
                        self._running = None
        finally:
            with self._cancel_lock:
                self._queued.discard(token)
                self._cancelled.discard(token)

    def cancel(self, token: object):
        """Interrupt the statement for ``token``, or drop it if still queued.

        A token whose statement already finished is ignored.
        """
        with self._cancel_lock:
            if self._running is token and self._conn is not None:
                self._conn.interrupt()
            elif token in self._queued:
                self._cancelled.add(token)

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            self.state = ConnectionState.UNINITIALIZED


class QueryExecutor:
    """Submits SQL to the shared connection with a per-call timeout."""

    def __init__(self, connection: EngineConnection, timeout: Optional[float] = None):
        self.connection = connection
        self.timeout = timeout

    async def execute(self, sql: str) -> list[tuple]:
        self.connection.ensure_ready()
        logger.debug("Executing SQL:\n%s", sql)

        token = object()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.connection.run, sql, token),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self.connection.cancel(token)
            raise ExecutionError(
                f"Query exceeded the {self.timeout}s timeout"
            ) from None
        except duckdb.Error as e:
            raise ExecutionError(str(e)) from e


async def query_features(
    layer: LayerMetadata,
    raw_params: Mapping[str, Any],
    executor: QueryExecutor,
) -> dict:
    """
    Execute a GeoServices query against a Parquet-backed layer.

    Pipeline:
    1. Normalize raw params against the layer metadata
    2. Build the statement set (one composed WHERE clause)
    3. Execute the statement(s) the request mode needs
    4. Shape rows into a count, extent or FeatureCollection response
    """
    request = normalize_params(raw_params, layer)
    statements = build_statements(request)

    start = time.perf_counter()
    if request.mode == "count":
        result = shape_count(await executor.execute(statements.count_sql))
    elif request.mode == "extent":
        count_rows = await executor.execute(statements.count_sql)
        extent_rows = await executor.execute(statements.extent_sql)
        result = shape_extent(count_rows, extent_rows, layer.crs)
    else:
        rows = await executor.execute(statements.data_sql)
        result = shape_feature_collection(rows, layer, request.out_fields)
        result["metadata"]["limitExceeded"] = (
            len(result["features"]) >= request.result_record_count
        )

    logger.info(
        "Query on %s (%s) finished in %.3fs",
        layer.name,
        request.mode,
        time.perf_counter() - start,
    )
    return result
