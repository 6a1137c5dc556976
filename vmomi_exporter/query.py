import logging
from dataclasses import dataclass
from datetime import timedelta

from pyVmomi import vim

from vmomi_exporter.entity import ManagedEntityType
from vmomi_exporter.interval import IntervalChoice

log = logging.getLogger(__name__)

# Historical queries only look back this far. 30 minutes is the shortest
# rollup period of datastore statistics.
LOOKBACK = timedelta(minutes=30)

# Only the newest sample is reported.
MAX_SAMPLE = 0


@dataclass(frozen=True)
class InstanceInfo:
    entity_type: ManagedEntityType
    entity_id: str
    entity_name: str
    instance: str
    counter_id: int


def filter_metric_ids(counters, available):
    if not counters:
        return list(available)

    wanted = {c.id for c in counters}
    return [m for m in available if m.counterId in wanted]


def build_query_spec(session, entity, interval, metric_ids, server_clock):
    spec = vim.PerformanceManager.QuerySpec(entity=session.managed_object(entity),
                                            intervalId=interval.id,
                                            metricId=metric_ids,
                                            maxSample=MAX_SAMPLE)
    if not interval.current:
        spec.startTime = server_clock - LOOKBACK

    return spec


async def plan_query(session, entity, interval, counters, server_clock):
    pm = session.content.perfManager
    available = await session.call(pm.QueryAvailablePerfMetric,
                                   entity=session.managed_object(entity),
                                   intervalId=interval.id)

    metric_ids = filter_metric_ids(counters, available or [])
    if not metric_ids:
        log.debug(f"No counters available for {entity.type}({entity.id}) at interval {interval.id}")
        return None

    return build_query_spec(session, entity, interval, metric_ids, server_clock)


async def plan_queries(session, entities, counters, resolver, server_clock):
    specs = []
    for entity in entities:
        interval = await resolver.resolve(session, entity)
        if not interval.supported:
            continue

        spec = await plan_query(session, entity, interval, counters, server_clock)
        if spec is not None:
            specs.append(spec)

    log.debug(f"Planned {len(specs)} queries for {len(entities)} entities")
    return specs


async def plan_entity_query(session, entity, interval_id, counter_id, historical, server_clock):
    interval = IntervalChoice(id=interval_id, current=interval_id not in historical)

    pm = session.content.perfManager
    available = await session.call(pm.QueryAvailablePerfMetric,
                                   entity=session.managed_object(entity),
                                   intervalId=interval.id)

    metric_ids = [m for m in available or [] if m.counterId == counter_id]
    if not metric_ids:
        raise LookupError(f"Counter {counter_id} is not available for {entity.type}({entity.id}) at interval {interval_id}")

    return build_query_spec(session, entity, interval, metric_ids, server_clock)


def instance_infos(entities, specs):
    names = {(str(e.type), e.id): e.name for e in entities}

    infos = []
    for spec in specs:
        ref = spec.entity
        for metric_id in spec.metricId:
            infos.append(InstanceInfo(entity_type=ManagedEntityType(ref._wsdlName),
                                      entity_id=ref._moId,
                                      entity_name=names.get((ref._wsdlName, ref._moId), ""),
                                      instance=metric_id.instance,
                                      counter_id=metric_id.counterId))

    return infos
