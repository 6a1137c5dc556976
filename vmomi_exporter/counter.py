import logging
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterInfo:
    id: int
    group: str = ""
    name: str = ""
    name_summary: str = ""
    rollup: str = ""
    stats: str = ""
    unit: str = ""

    @property
    def key(self):
        return self.group, self.name, self.rollup


def to_counter_info(counter):
    return CounterInfo(id=counter.key,
                       group=counter.groupInfo.key,
                       name=counter.nameInfo.key,
                       name_summary=counter.nameInfo.summary,
                       rollup=str(counter.rollupType),
                       stats=str(counter.statsType),
                       unit=counter.unitInfo.key)


async def fetch_counters(session):
    perf_counters = await session.call(getattr, session.content.perfManager, "perfCounter")
    return [to_counter_info(c) for c in perf_counters or []]


def complement_counter(catalog, counter):
    """Find the catalog entry for a counter known by id or by (group, name, rollup).

    Counter ids differ between vCenter and ESXi endpoints, so configured
    counters are matched on their semantic key unless an id is given.
    """
    for info in catalog:
        if counter.id and info.id == counter.id:
            return info

        if info.key == counter.key:
            return info

    return None


def complement_counters(catalog, counters):
    found = []
    for counter in counters:
        info = complement_counter(catalog, counter)
        if info is None:
            log.warning(f"Counter {'.'.join(counter.key)} is not provided by the server")
            continue

        if info not in found:
            found.append(info)

    return found
