import logging
import re
from threading import Lock

from prometheus_client.core import GaugeMetricFamily

log = logging.getLogger(__name__)

LABEL_COUNTER_ID = "counter_id"
LABEL_COUNTER_STAT = "counter_stat"
LABEL_COUNTER_UNIT = "counter_unit"
LABEL_COUNTER_INTERVAL = "counter_interval"
LABEL_ENTITY_ID = "entity_id"
LABEL_ENTITY_NAME = "entity_name"
LABEL_ENTITY_TYPE = "entity_type"
LABEL_ENTITY_INSTANCE = "entity_instance"

CONST_LABELS = (LABEL_COUNTER_ID, LABEL_COUNTER_STAT, LABEL_COUNTER_UNIT)
DIMENSION_LABELS = (
    LABEL_COUNTER_INTERVAL,
    LABEL_ENTITY_ID,
    LABEL_ENTITY_NAME,
    LABEL_ENTITY_TYPE,
    LABEL_ENTITY_INSTANCE,
)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def gauge_name(counter):
    return _INVALID_NAME_CHARS.sub("_", f"{counter.group}_{counter.name}_{counter.rollup}")


def metric_labels(metric):
    return {
        LABEL_COUNTER_INTERVAL: str(metric.interval),
        LABEL_ENTITY_ID: metric.entity.id,
        LABEL_ENTITY_NAME: metric.entity.name,
        LABEL_ENTITY_TYPE: str(metric.entity.type),
        LABEL_ENTITY_INSTANCE: metric.instance,
    }


class PerfGauge:

    def __init__(self, counter):
        self.id = counter.id
        self.name = gauge_name(counter)
        self.documentation = counter.name_summary or self.name
        self.const_labels = {
            LABEL_COUNTER_ID: str(counter.id),
            LABEL_COUNTER_STAT: counter.stats,
            LABEL_COUNTER_UNIT: counter.unit,
        }
        self._values = {}

    @staticmethod
    def _key(labels):
        return tuple(labels[name] for name in DIMENSION_LABELS)

    def set(self, labels, value, timestamp):
        self._values[self._key(labels)] = (float(value), timestamp)

    def get(self, labels):
        return self._values.get(self._key(labels))

    def reset(self):
        self._values.clear()

    def samples(self):
        const = [self.const_labels[name] for name in CONST_LABELS]
        for key, (value, timestamp) in self._values.items():
            yield const + list(key), value, timestamp


class GaugeRegistry:
    """Gauges of every performance counter, keyed by counter id.

    Observations keep the timestamp of their sample; the values are exposed
    through ``collect`` as a prometheus_client custom collector.
    """

    def __init__(self, gauges=()):
        self._gauges = {g.id: g for g in gauges}
        self._lock = Lock()

    def __len__(self):
        return len(self._gauges)

    def __contains__(self, counter_id):
        return counter_id in self._gauges

    def get(self, counter_id):
        return self._gauges.get(counter_id)

    def reset(self):
        with self._lock:
            for gauge in self._gauges.values():
                gauge.reset()

    def update(self, metrics):
        dropped = 0
        with self._lock:
            # Entities and instances that disappeared must not linger.
            for gauge in self._gauges.values():
                gauge.reset()

            for metric in metrics:
                if not self._observe(metric):
                    dropped += 1

        if dropped:
            log.warning(f"Dropped {dropped} metrics without a gauge")

    def _observe(self, metric):
        gauge = self._gauges.get(metric.counter.id)
        if gauge is None:
            log.warning(f"Not found gauge for counter {metric.counter.id} ({gauge_name(metric.counter)})")
            return False

        gauge.set(metric_labels(metric), metric.value, metric.timestamp.timestamp())
        return True

    def collect(self):
        families = {}
        with self._lock:
            for gauge in self._gauges.values():
                samples = list(gauge.samples())
                if not samples:
                    continue

                family = families.get(gauge.name)
                if family is None:
                    family = GaugeMetricFamily(gauge.name,
                                               gauge.documentation,
                                               labels=CONST_LABELS + DIMENSION_LABELS)
                    families[gauge.name] = family

                for labels, value, timestamp in samples:
                    family.add_metric(labels, value, timestamp=timestamp)

        yield from families.values()


def build_gauges(catalog):
    return GaugeRegistry(PerfGauge(counter) for counter in catalog)
