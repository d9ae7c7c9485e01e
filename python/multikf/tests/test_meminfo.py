import pytest

from multikf.tests.conftest import MEMINFO_RECORD
from multikf.utils.meminfo import parse_cpu_count, parse_meminfo


def test_minimal_record():
    meminfo = parse_meminfo("MemTotal: 1000 kB\nMemFree: 70 kB\n")
    assert meminfo.total() == "0.95 Mib"
    assert meminfo.free() == "0.07 Mib"
    assert meminfo.available_kb is None


def test_full_record_keeps_optional_fields():
    meminfo = parse_meminfo(MEMINFO_RECORD)
    assert meminfo.total_kb == 8041264
    assert meminfo.free_kb == 1201312
    assert meminfo.available_kb == 5012884
    assert meminfo.cached_kb == 3411720


def test_unparsable_optional_field_is_ignored():
    meminfo = parse_meminfo("MemTotal: 1000 kB\nMemFree: 70 kB\nCached: lots\nnoise\n")
    assert meminfo.cached_kb is None


@pytest.mark.parametrize(
    "record",
    [
        "MemFree: 70 kB\n",
        "MemTotal: 1000 kB\n",
        "MemTotal: many kB\nMemFree: 70 kB\n",
        "",
    ],
)
def test_required_fields(record):
    with pytest.raises(ValueError):
        parse_meminfo(record)


def test_cpu_count():
    assert parse_cpu_count("8\n").num_cpus == 8
    with pytest.raises(ValueError):
        parse_cpu_count("eight")
    with pytest.raises(ValueError):
        parse_cpu_count("0")

