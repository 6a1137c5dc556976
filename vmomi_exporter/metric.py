import logging
from dataclasses import dataclass
from datetime import datetime

from pyVmomi import vim

from vmomi_exporter.counter import CounterInfo
from vmomi_exporter.entity import Entity

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Metric:
    entity: Entity
    counter: CounterInfo
    instance: str
    timestamp: datetime
    value: int
    interval: int

    @property
    def key(self):
        return self.counter.id, self.entity.id, self.entity.type, self.instance, self.interval


class MaterializeError(Exception):
    pass


def latest_sample(sample_info, values):
    """Pick the newest sample of a series.

    Historical queries ignore maxSample and return every sample in the
    window, so the latest one is searched for. The first sample wins ties.
    """
    latest = None
    for sample, value in zip(sample_info, values):
        if latest is None or sample.timestamp > latest[0].timestamp:
            latest = sample, value

    return latest


def to_metric(counters, entity, sample_info, series):
    if not isinstance(series, vim.PerformanceManager.IntSeries):
        raise MaterializeError(f"Unsupported metric series {type(series).__name__}")

    counter = counters.get(series.id.counterId)
    if counter is None:
        raise MaterializeError(f"Not found counter {series.id.counterId}")

    latest = latest_sample(sample_info, series.value or [])
    if latest is None:
        return None

    sample, value = latest
    return Metric(entity=entity,
                  counter=counter,
                  instance=series.id.instance or entity.name,
                  timestamp=sample.timestamp,
                  value=value,
                  interval=sample.interval)


def materialize(catalog, entities, raw_series):
    counters = {c.id: c for c in catalog}
    known = {(str(e.type), e.id): e for e in entities}

    metrics = []
    for entity_metric in raw_series:
        ref = entity_metric.entity
        entity = known.get((ref._wsdlName, ref._moId))
        if entity is None:
            log.warning(f"Skipping metrics of unknown entity {ref._wsdlName}({ref._moId})")
            continue

        if not isinstance(entity_metric, vim.PerformanceManager.EntityMetric):
            log.warning(f"Skipping unsupported metric format {type(entity_metric).__name__} of {entity.name}")
            continue

        if not entity_metric.sampleInfo:
            continue

        for series in entity_metric.value or []:
            try:
                metric = to_metric(counters, entity, entity_metric.sampleInfo, series)
            except MaterializeError as e:
                log.warning(f"Could not convert metric of {entity.name}: {e}")
                continue

            if metric is not None:
                metrics.append(metric)

    return metrics
