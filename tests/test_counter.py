import pytest
from fakes import perf_counter

from vmomi_exporter.counter import CounterInfo, complement_counter, complement_counters, fetch_counters, to_counter_info

CATALOG = [
    CounterInfo(id=2, group="cpu", name="usage", rollup="average"),
    CounterInfo(id=6, group="cpu", name="usagemhz", rollup="average"),
    CounterInfo(id=24, group="mem", name="usage", rollup="average"),
    CounterInfo(id=25, group="mem", name="usage", rollup="maximum"),
]


def test_to_counter_info():
    counter = perf_counter(2, "cpu", "usage", rollup="average", stats="rate", unit="percent",
                           summary="CPU usage as a percentage during the interval")

    assert to_counter_info(counter) == CounterInfo(id=2,
                                                   group="cpu",
                                                   name="usage",
                                                   name_summary="CPU usage as a percentage during the interval",
                                                   rollup="average",
                                                   stats="rate",
                                                   unit="percent")


@pytest.mark.asyncio
async def test_fetch_counters(session):
    session.perf_manager.perfCounter = [perf_counter(2, "cpu", "usage"), perf_counter(24, "mem", "usage")]

    catalog = await fetch_counters(session)

    assert [c.id for c in catalog] == [2, 24]


class TestComplement:

    def test_by_key(self):
        info = complement_counter(CATALOG, CounterInfo(id=0, group="mem", name="usage", rollup="maximum"))
        assert info.id == 25

    def test_by_id(self):
        assert complement_counter(CATALOG, CounterInfo(id=6)).key == ("cpu", "usagemhz", "average")

    def test_missing(self):
        assert complement_counter(CATALOG, CounterInfo(id=0, group="disk", name="read", rollup="average")) is None

    def test_missing_are_dropped_with_warning(self, caplog):
        counters = [CounterInfo(id=0, group="cpu", name="usage", rollup="average"),
                    CounterInfo(id=0, group="disk", name="read", rollup="average")]

        found = complement_counters(CATALOG, counters)

        assert [c.id for c in found] == [2]
        assert "disk.read.average" in caplog.text

    def test_duplicates_collapse(self):
        counters = [CounterInfo(id=0, group="cpu", name="usage", rollup="average"), CounterInfo(id=2)]
        assert complement_counters(CATALOG, counters) == [CATALOG[0]]
