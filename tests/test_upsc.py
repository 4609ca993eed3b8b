"""
Tests for the NUT upsd collector.
"""

import asyncio

import pytest

from conftest import FakeUpsd, var_list
from sensor_exporter.collectors.base import CollectorOptions, ScrapeStatus
from sensor_exporter.collectors.upsc import (
    DEFAULT_HOST,
    HELP_LINES,
    STRING_MAPPING,
    TYPE_LINES,
    UPSD_PORT,
    VAR_MAPPING,
    UpscCollector,
    parse_reading,
    parse_target,
)
from sensor_exporter.config.loader import ConfigError
from sensor_exporter.incidents import IncidentCounter


def collector_for(server: FakeUpsd, ups: str, options: CollectorOptions) -> UpscCollector:
    return UpscCollector.create(f"{ups}@127.0.0.1:{server.port}", options)


# --- construction -----------------------------------------------------------


def test_target_with_host_and_port_keeps_port_out_of_labels() -> None:
    """Test that the port is used for connecting but not as a label."""
    ups, host, port, labels = parse_target("myups@nas.local:3500")

    assert (ups, host, port) == ("myups", "nas.local", 3500)
    assert labels == '{ups="myups",host="nas.local"}'
    assert "3500" not in labels


def test_target_with_host_only_uses_upsd_port() -> None:
    """Test that a host without port uses the upsd port."""
    _, host, port, labels = parse_target("myups@nas.local")

    assert host == "nas.local"
    assert port == UPSD_PORT
    assert labels == '{ups="myups",host="nas.local"}'


def test_target_without_host_defaults_to_localhost() -> None:
    """Test that a bare UPS name talks to localhost and has no host label."""
    ups, host, port, labels = parse_target("myups")

    assert ups == "myups"
    assert host == DEFAULT_HOST == "localhost"
    assert port == UPSD_PORT == 3493
    assert labels == '{ups="myups"}'


def test_target_ipv6_host() -> None:
    """Bracketed IPv6 hosts may carry a port."""
    _, host, port, _ = parse_target("myups@[::1]:4000")

    assert host == "::1"
    assert port == 4000


@pytest.mark.parametrize("opts", ["", "a@b@c", "@host", "ups@host:port", "ups@host:0"])
def test_malformed_target_is_a_config_error(opts: str) -> None:
    """Test that malformed UPS targets raise ConfigError."""
    with pytest.raises(ConfigError):
        parse_target(opts)


def test_create_builds_tokens_and_labels(options: CollectorOptions) -> None:
    """Test the list tokens, labels and identity of a new collector."""
    collector = UpscCollector.create("myups@nas.local:3500", options)

    assert collector.labels == '{ups="myups",host="nas.local"}'
    assert collector.address == "nas.local:3500"
    assert collector.begin_token == "BEGIN LIST VAR myups"
    assert collector.end_token == "END LIST VAR myups"
    assert collector.update_interval == 10.0
    assert collector.identity == 'upsc{ups="myups",host="nas.local"}'


def test_label_override_replaces_labels(incidents: IncidentCounter) -> None:
    """Test that a label override replaces the computed labels."""
    options = CollectorOptions(incidents=incidents, labels='{site="lab"}')
    collector = UpscCollector.create("myups@nas.local", options)

    assert collector.labels == '{site="lab"}'


def test_ups_name_is_matched_literally(options: CollectorOptions) -> None:
    """Regex characters in the UPS name match only themselves."""
    collector = UpscCollector.create("ups.1", options)

    assert collector.pattern.match('VAR ups.1 ups.load "5"')
    assert not collector.pattern.match('VAR upsX1 ups.load "5"')


def test_metric_catalog_is_consistent() -> None:
    """Every mapped variable has its own metric with HELP and TYPE lines."""
    metrics = set(VAR_MAPPING.values())

    assert len(metrics) == len(VAR_MAPPING)
    assert {line.split()[2] for line in TYPE_LINES} == metrics
    assert {line.split()[2] for line in HELP_LINES} == metrics
    assert all(line.endswith(" gauge") for line in TYPE_LINES)


def test_parse_reading() -> None:
    """Test numeric and symbolic value parsing."""
    assert parse_reading("42") == 42.0
    assert parse_reading("13.5") == 13.5
    assert parse_reading("OL") == 2
    assert parse_reading("LB") == 0
    assert parse_reading("FSD OB") == 0.5
    assert STRING_MAPPING["enabled"] == 1
    with pytest.raises(ValueError):
        parse_reading("OL BOOST TRIM")


# --- scraping -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_scrape_single_reading(options: CollectorOptions, incidents: IncidentCounter) -> None:
    """Test scraping a listing with one known variable."""
    async with FakeUpsd(lambda ups: var_list(ups, {"battery.charge": "42"})) as server:
        collector = collector_for(server, "dev", options)
        result = await collector.safe_scrape()

    assert result.status is ScrapeStatus.OK
    assert result.text == 'upsc_battery_charge{ups="dev",host="127.0.0.1"} 42.00\n'
    assert server.requests == ["LIST VAR dev"]
    assert incidents.value == 0


@pytest.mark.asyncio
async def test_scrape_maps_symbolic_values(options: CollectorOptions) -> None:
    """Test that status words are mapped to numbers."""
    async with FakeUpsd(lambda ups: var_list(ups, {"ups.status": "OL"})) as server:
        online = await collector_for(server, "a", options).safe_scrape()
    async with FakeUpsd(lambda ups: var_list(ups, {"ups.status": "LB"})) as server:
        low = await collector_for(server, "b", options).safe_scrape()

    assert online.text == 'upsc_ups_online{ups="a",host="127.0.0.1"} 2.00\n'
    assert low.text == 'upsc_ups_online{ups="b",host="127.0.0.1"} 0.00\n'


@pytest.mark.asyncio
async def test_scrape_drops_unknown_fields(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that variables outside the catalog are skipped silently."""
    variables = {
        "device.mfr": "ACME",
        "ups.load": "14",
        "driver.version": "2.8.0",
        "outlet.1.status": "on",
    }
    async with FakeUpsd(lambda ups: var_list(ups, variables)) as server:
        result = await collector_for(server, "dev", options).safe_scrape()

    assert result.status is ScrapeStatus.OK
    assert result.text == 'upsc_ups_load{ups="dev",host="127.0.0.1"} 14.00\n'
    assert incidents.value == 0


@pytest.mark.asyncio
async def test_scrape_full_listing(options: CollectorOptions) -> None:
    """Test a realistic listing with several variables."""
    variables = {
        "battery.charge": "100",
        "battery.voltage": "13.6",
        "input.voltage": "230.0",
        "ups.beeper.status": "enabled",
        "ups.load": "21",
        "ups.status": "OL",
    }
    async with FakeUpsd(lambda ups: var_list(ups, variables)) as server:
        result = await collector_for(server, "dev", options).safe_scrape()

    lines = result.text.splitlines()
    assert len(lines) == 6
    assert 'upsc_battery_voltage{ups="dev",host="127.0.0.1"} 13.60' in lines
    assert 'upsc_ups_beeper_enabled{ups="dev",host="127.0.0.1"} 1.00' in lines


@pytest.mark.asyncio
async def test_scrape_empty_listing(options: CollectorOptions, incidents: IncidentCounter) -> None:
    """An empty listing is a successful scrape without samples."""
    async with FakeUpsd(lambda ups: var_list(ups, {})) as server:
        result = await collector_for(server, "dev", options).safe_scrape()

    assert result.status is ScrapeStatus.OK
    assert result.text == ""
    assert incidents.value == 0


@pytest.mark.asyncio
async def test_unparseable_value_keeps_partial_result(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that a bad value keeps the readings before it."""
    variables = {"battery.charge": "80", "ups.status": "OL BOOST", "ups.load": "10"}
    async with FakeUpsd(lambda ups: var_list(ups, variables)) as server:
        result = await collector_for(server, "dev", options).safe_scrape()

    assert result.status is ScrapeStatus.PARTIAL
    assert result.text == 'upsc_battery_charge{ups="dev",host="127.0.0.1"} 80.00\n'
    assert "ups.status" in result.error
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_unknown_ups_is_an_incident(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that ERR UNKNOWN-UPS fails the scrape."""
    async with FakeUpsd(lambda ups: ["ERR UNKNOWN-UPS"]) as server:
        result = await collector_for(server, "nope", options).safe_scrape()

    assert result.status is ScrapeStatus.FAILED
    assert result.text == ""
    assert "unknown ups" in result.error
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_unexpected_response_is_an_incident(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that a listing for another UPS is rejected."""
    async with FakeUpsd(lambda ups: var_list("other", {"ups.load": "5"})) as server:
        result = await collector_for(server, "dev", options).safe_scrape()

    assert result.status is ScrapeStatus.FAILED
    assert result.text == ""
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_connection_closed_mid_listing_discards_readings(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that a truncated listing yields no samples at all."""
    def truncated(ups: str) -> list[str]:
        return var_list(ups, {"battery.charge": "80", "ups.load": "10"})[:-1]

    async with FakeUpsd(truncated) as server:
        result = await collector_for(server, "dev", options).safe_scrape()

    assert result.status is ScrapeStatus.FAILED
    assert result.text == ""
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_silent_daemon_times_out(options: CollectorOptions, incidents: IncidentCounter) -> None:
    """Test that a daemon that never answers fails the scrape."""
    async with FakeUpsd(lambda ups: None) as server:
        result = await collector_for(server, "dev", options).safe_scrape()

    assert result.status is ScrapeStatus.FAILED
    assert result.text == ""
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_trickling_daemon_is_cut_off_at_timeout(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """A listing that never ends fails once the scrape timeout has passed."""

    def endless(ups: str) -> list[str]:
        return [f"BEGIN LIST VAR {ups}"] + [f'VAR {ups} device.mfr "x{n}"' for n in range(30)]

    loop = asyncio.get_running_loop()
    async with FakeUpsd(endless, delay=0.1) as server:
        started = loop.time()
        result = await collector_for(server, "dev", options).safe_scrape()
        elapsed = loop.time() - started

    assert result.status is ScrapeStatus.FAILED
    assert result.text == ""
    assert "within 0.5s" in result.error
    assert elapsed < 1.5
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_connect_timeout_counts_one_incident(
    monkeypatch: pytest.MonkeyPatch, options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that a hanging connect fails with a single incident."""
    async def never_connects(host, port):
        await asyncio.sleep(3600)

    monkeypatch.setattr(asyncio, "open_connection", never_connects)
    collector = UpscCollector.create("dev@192.0.2.1", options)

    result = await collector.safe_scrape()

    assert result.text == ""
    assert result.status is ScrapeStatus.FAILED
    assert "timed out" in result.error
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_connection_refused_is_an_incident(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that a refused connection fails the scrape."""
    async with FakeUpsd(lambda ups: []) as server:
        port = server.port
    # Server is gone, nothing listens on the port any more
    collector = UpscCollector.create(f"dev@127.0.0.1:{port}", options)

    result = await collector.safe_scrape()

    assert result.status is ScrapeStatus.FAILED
    assert incidents.value == 1


@pytest.mark.asyncio
async def test_unreachable_daemon_does_not_fail_initialize(
    options: CollectorOptions, incidents: IncidentCounter
) -> None:
    """Test that initialize() only logs when upsd is unreachable."""
    async with FakeUpsd(lambda ups: []) as server:
        port = server.port
    collector = UpscCollector.create(f"dev@127.0.0.1:{port}", options)

    await collector.initialize()

    assert incidents.value == 0


@pytest.mark.asyncio
async def test_concurrent_scrapes_keep_their_own_exchanges(options: CollectorOptions) -> None:
    """Concurrent scrapes of different UPSes never mix their answers."""
    readings = {"alpha": "11", "beta": "22"}

    def respond(ups: str) -> list[str]:
        return var_list(ups, {"battery.charge": readings[ups], "ups.load": readings[ups]})

    async with FakeUpsd(respond, delay=0.01) as server:
        alpha = collector_for(server, "alpha", options)
        beta = collector_for(server, "beta", options)
        results = await asyncio.gather(*(c.safe_scrape() for _ in range(3) for c in (alpha, beta)))

    for result in results[0::2]:
        assert result.text.count('ups="alpha"') == 2
        assert " 11.00\n" in result.text
        assert "beta" not in result.text
    for result in results[1::2]:
        assert result.text.count('ups="beta"') == 2
        assert " 22.00\n" in result.text
        assert "alpha" not in result.text
    assert sorted(server.requests) == ["LIST VAR alpha"] * 3 + ["LIST VAR beta"] * 3
