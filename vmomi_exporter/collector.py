import asyncio
import logging
import time

from vmomi_exporter.counter import complement_counters, fetch_counters
from vmomi_exporter.entity import entities_from_roots, resolve_entities, resolve_from_root
from vmomi_exporter.gauge import GaugeRegistry, build_gauges
from vmomi_exporter.interval import IntervalResolver, fetch_historical_intervals
from vmomi_exporter.metric import materialize
from vmomi_exporter.query import plan_queries
from vmomi_exporter.session import open_session

log = logging.getLogger(__name__)


async def resolve_targets(session, config):
    """Entities whose performance is exported, below the configured roots."""
    roots = await entities_from_roots(session, config.roots)
    if roots is None:
        return await resolve_from_root(session, config.object_types)

    return await resolve_entities(session, roots, config.object_types, include_roots=True)


async def query(session, config, catalog):
    server_clock = await session.current_time()

    counters = complement_counters(catalog, config.counter_infos)
    if config.counters and not counters:
        log.warning("None of the configured counters is provided by the server")
        return []

    entities = await resolve_targets(session, config)
    if not entities:
        return []

    historical = await fetch_historical_intervals(session)
    resolver = IntervalResolver(historical)
    specs = await plan_queries(session, entities, counters, resolver, server_clock)
    if not specs:
        log.info("No performance queries to run")
        return []

    pm = session.content.perfManager
    raw_series = await session.call(pm.QueryPerf, querySpec=specs)

    return materialize(catalog, entities, raw_series or [])


class VmomiCollector:
    """Prometheus collector of vSphere performance counters.

    Each scrape logs in, queries the latest sample of every configured
    counter and replaces the gauge values. Scrapes never overlap.
    """

    def __init__(self, settings, config):
        self.settings = settings
        self.config = config
        self.gauges = GaugeRegistry()
        self._lock = asyncio.Lock()

    async def load_gauges(self, session):
        catalog = await fetch_counters(session)
        self.gauges = build_gauges(catalog)
        log.info(f"Registered {len(self.gauges)} gauges")
        return catalog

    async def start(self):
        log.info("Loading performance counters...")
        try:
            async with open_session(self.settings) as session:
                await self.load_gauges(session)
        except Exception as e:
            log.exception(f"Loading performance counters failed: {e}")

    async def scrape(self):
        async with self._lock:
            start = time.time()

            try:
                log.info("Collecting metrics...")
                async with open_session(self.settings) as session:
                    if len(self.gauges):
                        catalog = await fetch_counters(session)
                    else:
                        catalog = await self.load_gauges(session)

                    metrics = await query(session, self.config, catalog)
            except Exception as e:
                log.exception(f"Metrics update failed: {e}")
                log.warning("Keeping previous metrics")
                return False

            self.gauges.update(metrics)

            duration = time.time() - start
            log.info(f"Metrics updated in {duration:.2f}s ({len(metrics)} samples)")
            return True

    def collect(self):
        return self.gauges.collect()
