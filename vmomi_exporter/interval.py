import logging
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntervalChoice:
    id: int
    current: bool = False

    @property
    def supported(self):
        return self.id != 0


# Neither real-time nor historical statistics are provided.
UNSUPPORTED = IntervalChoice(id=0, current=True)


async def fetch_historical_intervals(session):
    intervals = await session.call(getattr, session.content.perfManager, "historicalInterval")
    return sorted(i.samplingPeriod for i in intervals or [] if i.enabled)


async def list_intervals(session, entity, historical):
    pm = session.content.perfManager
    summary = await session.call(pm.QueryPerfProviderSummary, entity=session.managed_object(entity))

    intervals = []
    if summary.currentSupported:
        intervals.append(IntervalChoice(id=summary.refreshRate, current=True))

    if summary.summarySupported:
        intervals.extend(IntervalChoice(id=period, current=False) for period in historical)

    return intervals


def choose_interval(intervals):
    for interval in intervals:
        if interval.current and interval.supported:
            return interval

    periods = [i for i in intervals if not i.current and i.supported]
    if periods:
        return min(periods, key=lambda i: i.id)

    return UNSUPPORTED


class IntervalResolver:
    """Best usable interval per entity type, for the lifetime of one scrape."""

    def __init__(self, historical):
        self.historical = historical
        self.cache = {}

    async def resolve(self, session, entity):
        entity_type = str(entity.type)

        if entity_type not in self.cache:
            try:
                intervals = await list_intervals(session, entity, self.historical)
            except Exception as e:
                log.warning(f"Could not get interval for {entity_type}: {e}")
                intervals = []

            self.cache[entity_type] = choose_interval(intervals)
            log.debug(f"Interval for {entity_type}: {self.cache[entity_type]}")

        return self.cache[entity_type]
