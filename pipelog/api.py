import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse

from pipelog.errors import InvalidOffsetError, StorageError, StorageTimeoutError
from pipelog.generator import RandomMessageFeed, RecordGenerator, SizeTieredGenerator
from pipelog.log import LogStore, MemoryLogStore, SQLiteLogStore
from pipelog.models import MAX_OFFSET, PolledMessage
from pipelog.reader import BatchReader
from pipelog.runtime.scheduler import PeriodicTask
from pipelog.settings import DataMode, Settings, settings as default_settings
from pipelog.utils.logging import get_logger
from pipelog.utils.metrics import MetricsManager
from pipelog.utils.tracing import init_tracer

logger = get_logger("API")

_DIGITS = re.compile(r"[0-9]+")


def parse_offset(raw: Optional[str]) -> int:
    """Client offsets must be plain decimal integers in 0..MAX_OFFSET; an absent offset means 0."""
    if raw is None or raw == "":
        return 0
    text = raw.strip()
    # int() alone would also accept signs, underscores and non-ASCII digits
    if not _DIGITS.fullmatch(text):
        raise InvalidOffsetError(raw)
    offset = int(text)
    if offset > MAX_OFFSET:
        raise InvalidOffsetError(raw)
    return offset


class PollService:
    """
    Translates an offset poll into a budgeted batch read.
    Stateless: the cursor lives entirely with the client.
    """

    def __init__(self, reader: BatchReader):
        self.reader = reader
        self.metrics = MetricsManager()

    async def poll(self, after_offset: int) -> List[PolledMessage]:
        batch = await self.reader.read_batch(after_offset)
        self.metrics.record_poll(len(batch), batch.total_bytes)
        return [record.to_message() for record in batch.records]


def build_store(app_settings: Settings) -> LogStore:
    if app_settings.DATA_MODE is DataMode.TEST:
        return MemoryLogStore()
    return SQLiteLogStore(app_settings.SQLITE_DB_PATH, read_timeout=app_settings.STORE_READ_TIMEOUT)


def build_generator(app_settings: Settings, store: LogStore) -> Optional[RecordGenerator]:
    if app_settings.DATA_MODE is DataMode.TEST:
        return RandomMessageFeed(store, app_settings.random_feed_config())
    if app_settings.DATA_MODE is DataMode.SYNTHETIC:
        return SizeTieredGenerator(store, app_settings.generator_config())
    return None


def _problem(status: int, title: str, detail: str) -> Dict[str, Any]:
    return {"type": "about:blank", "status": status, "title": title, "detail": detail}


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidOffsetError)
    async def invalid_offset_handler(_: Request, exc: InvalidOffsetError):
        return JSONResponse(status_code=400, content=_problem(400, "Bad Request", str(exc)))

    @app.exception_handler(StorageTimeoutError)
    async def storage_timeout_handler(_: Request, exc: StorageTimeoutError):
        logger.error(f"Storage read timed out: {exc}")
        return JSONResponse(status_code=503, content=_problem(503, "Service Unavailable", str(exc)))

    @app.exception_handler(StorageError)
    async def storage_error_handler(_: Request, exc: StorageError):
        logger.error(f"Storage failure while serving request: {exc}")
        return JSONResponse(status_code=500, content=_problem(500, "Internal Server Error", str(exc)))


def create_app(app_settings: Optional[Settings] = None,
               store: Optional[LogStore] = None,
               generator: Optional[RecordGenerator] = None) -> FastAPI:
    """
    Creates the poll server.

    Args:
        app_settings: Configuration; defaults to the environment-loaded settings.
        store: Log store to serve; built from the data mode if omitted.
        generator: Background populator; built from the data mode if omitted
            and a store was not injected.
    """
    cfg = app_settings or default_settings
    if store is None:
        store = build_store(cfg)
        if generator is None:
            generator = build_generator(cfg, store)

    reader = BatchReader(
        store,
        byte_budget=cfg.POLL_BYTE_BUDGET,
        oversize_threshold=cfg.OVERSIZE_THRESHOLD,
        verify_sizes=cfg.VERIFY_RECORD_SIZES,
    )
    poll_service = PollService(reader)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if cfg.OTEL_ENABLED:
            init_tracer("pipelog")

        await store.start()
        task: Optional[PeriodicTask] = None
        if generator is not None:
            task = PeriodicTask(
                name=generator.name,
                interval=cfg.GENERATOR_INTERVAL,
                func=generator.generate_batch,
                stop_when=generator.is_complete,
            )
            task.start()
        app.state.generator_task = task
        logger.info(f"Serving log in {cfg.DATA_MODE.value} mode (budget={cfg.POLL_BYTE_BUDGET} bytes)")

        try:
            yield
        finally:
            if task is not None:
                await task.stop()
            await store.stop()
            logger.info("Poll server stopped")

    app = FastAPI(title="pipelog", version="0.1.0", lifespan=lifespan)
    app.state.store = store
    app.state.poll_service = poll_service
    install_exception_handlers(app)

    @app.get("/pipe/poll", response_model=List[PolledMessage])
    async def poll(offset: Optional[str] = Query(default=None)):
        """Records strictly after `offset`, or 204 when there is nothing new."""
        after_offset = parse_offset(offset)
        logger.debug(f"Poll request received offset={after_offset}")

        messages = await poll_service.poll(after_offset)
        if not messages:
            return Response(status_code=204)
        return JSONResponse(content=[m.model_dump(mode="json", by_alias=True) for m in messages])

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "role": "CLOUD",
            "mode": cfg.DATA_MODE.value,
            "totalMessages": await store.count(),
        }

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        recent = await store.tail(100)
        return {
            "role": "CLOUD",
            "mode": cfg.DATA_MODE.value,
            "totalMessages": await store.count(),
            "recentMessages": [{"offset": r.offset, "key": r.key} for r in recent],
            "showing": f"last {len(recent)} messages",
        }

    @app.get("/registry/topology")
    async def topology(nodeId: str = Query(default="unknown")) -> Dict[str, Any]:
        logger.info(f"Topology request from: {nodeId}")
        return {
            "nodeId": nodeId,
            "role": "LOCAL",
            "requestToFollow": [cfg.SERVER_PUBLIC_URL],
            "cloudDataUrl": cfg.SERVER_PUBLIC_URL,
            "cloudDataUrlFallback": None,
            "topologyVersion": "1.0",
            "topics": ["price-topic"],
        }

    @app.get("/metrics")
    async def metrics() -> Response:
        mm = MetricsManager()
        return Response(content=mm.exposition(), media_type=mm.content_type)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=default_settings.SERVER_HOST, port=default_settings.SERVER_PORT)
