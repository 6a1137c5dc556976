"""Builders of pyVmomi data objects and a session that calls inline."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock

from pyVmomi import vim, vmodl

from vmomi_exporter.session import Session

PerfManager = vim.PerformanceManager
PropertyCollector = vmodl.query.PropertyCollector


def at(seconds):
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class FakeSession(Session):

    def __init__(self, clock=2000):
        service_instance = MagicMock()
        service_instance._stub = None
        service_instance.CurrentTime.return_value = at(clock)

        content = MagicMock()
        content.rootFolder = vim.Folder("group-d1")
        content.perfManager.perfCounter = []
        content.perfManager.historicalInterval = []
        content.propertyCollector.RetrievePropertiesEx.return_value = None

        super().__init__(service_instance, content, timeout=5)

    async def call(self, fn, *args, **kwargs):
        return fn(*args, **kwargs)

    @property
    def perf_manager(self):
        return self.content.perfManager

    @property
    def property_collector(self):
        return self.content.propertyCollector


def session_factory(session):
    @asynccontextmanager
    async def open_session(settings):
        yield session

    return open_session


def description(key, summary=""):
    return vim.ElementDescription(key=key, label=key, summary=summary or key)


def perf_counter(key, group, name, rollup="average", stats="rate", unit="percent", summary=""):
    return PerfManager.CounterInfo(key=key,
                                   groupInfo=description(group),
                                   nameInfo=description(name, summary),
                                   unitInfo=description(unit),
                                   rollupType=getattr(PerfManager.CounterInfo.RollupType, rollup),
                                   statsType=getattr(PerfManager.CounterInfo.StatsType, stats))


def object_content(obj, props):
    return PropertyCollector.ObjectContent(
        obj=obj,
        propSet=[vmodl.DynamicProperty(name=k, val=v) for k, v in props.items()])


def retrieve_result(contents, token=None):
    return PropertyCollector.RetrieveResult(objects=contents, token=token)


def historical_interval(period, enabled=True):
    return vim.HistoricalInterval(key=period,
                                  samplingPeriod=period,
                                  name=f"{period}s",
                                  length=86400,
                                  level=1,
                                  enabled=enabled)


def provider_summary(obj, current=False, summary=True, refresh_rate=-1):
    return PerfManager.ProviderSummary(entity=obj,
                                       currentSupported=current,
                                       summarySupported=summary,
                                       refreshRate=refresh_rate)


def metric_id(counter_id, instance=""):
    return PerfManager.MetricId(counterId=counter_id, instance=instance)


def int_series(counter_id, values, instance=""):
    return PerfManager.IntSeries(id=metric_id(counter_id, instance), value=values)


def entity_metric(obj, samples, series):
    """``samples`` are (interval, epoch seconds) pairs."""
    return PerfManager.EntityMetric(
        entity=obj,
        sampleInfo=[PerfManager.SampleInfo(interval=i, timestamp=at(ts)) for i, ts in samples],
        value=series)
