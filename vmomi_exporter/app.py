import logging

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, PlatformCollector, ProcessCollector, generate_latest

log = logging.getLogger(__name__)


def create_app(collector):
    registry = CollectorRegistry()
    registry.register(collector)
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)

    app = FastAPI(title="vmomi-exporter")

    @app.on_event("startup")
    async def startup_event():
        log.info("Starting vmomi exporter...")
        await collector.start()

    @app.get("/metrics")
    async def metrics():
        # A failed scrape still exposes the previous values.
        await collector.scrape()
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app
