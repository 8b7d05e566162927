"""End-to-end tests for one check cycle."""
from __future__ import annotations

from ifstat.check import main, run_check
from ifstat.schemas import Status
from ifstat.sink import MemorySink
from ifstat.snmp_client import SnmpError

from conftest import FakeSource, device_fields, make_settings


def _run(source, store, now: float, **overrides) -> MemorySink:
    sink = MemorySink()
    settings = make_settings(**overrides)
    status = run_check(settings, source, store, sink, clock=lambda: now)
    assert status is sink.status
    return sink


def _one_port(**fields) -> FakeSource:
    return FakeSource({1: device_fields(1, **fields)})


# =========================================================================
# Baseline handling
# =========================================================================


def test_first_run_has_no_statistics_yet(store):
    source = FakeSource({1: device_fields(1), 2: device_fields(2)})
    sink = _run(source, store, 1000.0)

    assert sink.status is Status.OK
    assert sink.message == "Gi0/1 up, Gi0/2 up, 2 interfaces without statistics yet"
    assert sink.metrics == []
    assert sorted(store.load()) == [1, 2]


def test_second_run_computes_usage(store):
    _run(_one_port(octets=0), store, 1000.0)
    sink = _run(_one_port(octets=12_500_000), store, 1010.0, usage_thresholds="0.5,50")

    assert sink.status is Status.WARNING
    assert sink.message == "Gi0/1 in 10.0Mbps (1.0%), out 10.0Mbps (1.0%), OK: Gi0/1 up"
    names = [m.name for m in sink.metrics]
    assert "Gi0/1_in_bps" in names
    assert "Gi0/1_out_usage" in names
    usage = next(m for m in sink.metrics if m.name == "Gi0/1_in_usage")
    assert usage.value == 1.0
    assert str(usage.warning) == "0.5"


def test_traffic_in_bytes_uses_binary_prefixes(store):
    _run(_one_port(octets=0), store, 1000.0)
    sink = _run(_one_port(octets=12_500_000), store, 1010.0, traffic_bytes=True)

    assert sink.status is Status.OK
    assert "in 1.2MB/s (1.0%)" in sink.message
    bps = next(m for m in sink.metrics if m.name == "Gi0/1_in_bps")
    assert bps.value == 10_000_000


def test_integer_display(store):
    _run(_one_port(octets=0), store, 1000.0)
    sink = _run(_one_port(octets=12_500_000), store, 1010.0, integer_display=True)
    assert "in 10Mbps" in sink.message


def test_narrow_counter_wrap_between_runs(store):
    def port(octets):
        return FakeSource({1: {
            "name": "eth0", "admin_status": 1, "oper_status": 1,
            "speed": 100_000_000, "in_octets": octets, "out_octets": 0,
        }})

    _run(port(2 ** 32 - 1000), store, 1000.0)
    sink = _run(port(4000), store, 1010.0)

    bps = next(m for m in sink.metrics if m.name == "eth0_in_bps")
    assert bps.value == 5000 / 10 * 8
    assert sink.message.startswith("eth0 up, in 4.0kbps")


def test_counter_reset_skips_rates(store):
    _run(_one_port(octets=5_000_000, discontinuity=0), store, 1000.0)
    sink = _run(_one_port(octets=10, discontinuity=77), store, 1010.0, usage_thresholds="1")

    assert sink.status is Status.OK
    assert sink.message == "Gi0/1 up"
    assert sink.metrics == []


def test_errors_over_threshold(store):
    _run(_one_port(errors=0), store, 1000.0)
    sink = _run(_one_port(errors=50), store, 1010.0, error_thresholds="1,2")

    assert sink.status is Status.CRITICAL
    assert sink.message.startswith("Gi0/1 errors in 5.0pps, OK: Gi0/1 up")


def test_error_percent(store):
    def port(errors, packets):
        return _one_port(errors=errors, hc_in_ucast_pkts=packets, hc_out_ucast_pkts=0)

    _run(port(0, 0), store, 1000.0)
    sink = _run(port(10, 990), store, 1010.0, error_percent="0.5,5")

    assert sink.status is Status.WARNING
    assert "Gi0/1 errors 1.0%" in sink.message


# =========================================================================
# Interface status and filters
# =========================================================================


def _mixed_states() -> FakeSource:
    return FakeSource({
        1: device_fields(1),
        2: device_fields(2, oper_status=2),
        3: device_fields(3, admin_status=2, oper_status=2),
    })


def test_down_interface_is_critical(store):
    sink = _run(_mixed_states(), store, 1000.0)
    assert sink.status is Status.CRITICAL
    assert sink.message == (
        "Gi0/2 down, OK: Gi0/1 up, Gi0/3 admin down, "
        "3 interfaces without statistics yet"
    )


def test_down_severity_is_configurable(store):
    sink = _run(_mixed_states(), store, 1000.0, down_severity=Status.WARNING)
    assert sink.status is Status.WARNING


def test_uncounted_interface_is_listed_but_ignored(store):
    sink = _run(_mixed_states(), store, 1000.0, count_filter="-name=Gi0/2")
    assert sink.status is Status.OK
    assert "Gi0/2 down (critical, ignored)" in sink.message


def test_admin_down_needs_oper_down_to_be_ok(store):
    source = _one_port(admin_status=2, oper_status=7)
    sink = _run(source, store, 1000.0)
    assert sink.status is Status.CRITICAL
    assert sink.message.startswith("Gi0/1 lowerLayerDown")


def test_interface_filter_drops_interfaces(store):
    sink = _run(_mixed_states(), store, 1000.0, interface_filter="-name=Gi0/2")
    assert sink.status is Status.OK
    assert "Gi0/2" not in sink.message


def test_nothing_selected_is_unknown(store):
    sink = _run(_mixed_states(), store, 1000.0, interface_filter="-all")
    assert sink.status is Status.UNKNOWN
    assert sink.message == "no interfaces matched the filter"


def test_promiscuous_warning(store):
    source = _one_port(promiscuous=1)
    sink = _run(source, store, 1000.0, warn_promiscuous=True)
    assert sink.status is Status.WARNING
    assert sink.message.startswith("Gi0/1 promiscuous, OK: Gi0/1 up")


def test_configured_indexes_skip_discovery(store, fake_source):
    sink = _run(fake_source, store, 1000.0, if_indexes=[2, 4], parallelism=2)
    assert sorted(store.load()) == [2, 4]
    assert "Gi0/1 " not in sink.message


def test_parallel_and_sequential_runs_agree(tmp_path, fake_source):
    from ifstat.store import SampleStore

    one = _run(fake_source, SampleStore(tmp_path / "a.db"), 1000.0, parallelism=1)
    four = _run(fake_source, SampleStore(tmp_path / "b.db"), 1000.0, parallelism=4)
    assert one.message == four.message
    assert SampleStore(tmp_path / "a.db").load() == SampleStore(tmp_path / "b.db").load()


# =========================================================================
# Fatal errors
# =========================================================================


def test_collection_failure_keeps_baseline(store):
    _run(_one_port(octets=100), store, 1000.0)
    failing = FakeSource({1: device_fields(1)}, fail_on={1: SnmpError("timeout")})

    sink = _run(failing, store, 1010.0)

    assert sink.status is Status.UNKNOWN
    assert "timeout" in sink.message
    assert store.load()[1].timestamp == 1000.0


def test_corrupt_state_file_is_unknown(store):
    store.path.write_bytes(b"\x00garbage" * 200)
    sink = _run(_one_port(), store, 1000.0)

    assert sink.status is Status.UNKNOWN
    assert "cannot read previous samples" in sink.message
    assert store.path.read_bytes() == b"\x00garbage" * 200


def test_main_reports_configuration_error(monkeypatch, capsys):
    monkeypatch.setenv("IFSTAT_USAGE_THRESHOLDS", "80,abc")
    assert main() == 3
    out = capsys.readouterr().out
    assert out.startswith("IFSTAT UNKNOWN - configuration error:")


def test_main_runs_against_stub(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("IFSTAT_USE_STUB", "1")
    monkeypatch.setenv("IFSTAT_STATE_FILE", str(tmp_path / "state.db"))
    assert main() == 0
    assert capsys.readouterr().out.startswith("IFSTAT OK - stub1 up")
    assert (tmp_path / "state.db").exists()


def test_main_reports_bad_log_level(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("IFSTAT_USE_STUB", "1")
    monkeypatch.setenv("IFSTAT_STATE_FILE", str(tmp_path / "state.db"))
    monkeypatch.setenv("IFSTAT_LOG_LEVEL", "verbose")
    assert main() == 3
    assert capsys.readouterr().out.startswith("IFSTAT UNKNOWN - configuration error:")
    assert not (tmp_path / "state.db").exists()
