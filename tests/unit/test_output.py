import csv

import pytest

from edgeprobe.cli_errors import FileError, OutputError
from edgeprobe.constants import RESULT_COLUMNS, THROUGHPUT_COLUMN
from edgeprobe.models import Candidate, LocationRecord, ProbeResult, SpeedResult
from edgeprobe.output import (
    format_latency,
    format_throughput,
    read_results_csv,
    render_results_csv,
    write_results_csv,
)

LAX = LocationRecord(
    iata="LAX",
    region="North America",
    city="Los Angeles",
    region_localized="北美",
    country="United States",
    city_localized="洛杉矶",
    flag="🇺🇸",
)


def _probe(address="10.0.0.1", latency=87.4, location=LAX):
    return ProbeResult.build(Candidate(address, 443), "LAX", "US", latency, location)


def test_format_helpers():
    assert format_throughput(12.3456) == "12.35"
    assert format_throughput(1.0) == "1.00"
    assert format_throughput(0.5) == "0.500"
    assert format_latency(87.4) == "87 ms"


def test_render_without_speed_column():
    content = render_results_csv([_probe()], tls=True, speed_tested=False)
    rows = list(csv.reader(content.splitlines()))
    assert rows[0] == RESULT_COLUMNS
    assert rows[1] == [
        "10.0.0.1",
        "443",
        "true",
        "LAX",
        "US",
        "North America",
        "Los Angeles",
        "北美",
        "United States",
        "洛杉矶",
        "🇺🇸",
        "87 ms",
    ]


def test_render_with_speed_column():
    results = [SpeedResult(_probe(), throughput_kbs=5 * 1024), SpeedResult(_probe("10.0.0.2"), 512)]
    rows = list(csv.reader(render_results_csv(results, tls=False, speed_tested=True).splitlines()))
    assert rows[0][-1] == THROUGHPUT_COLUMN
    assert rows[1][2] == "false"
    assert rows[1][-1] == "5.00"
    assert rows[2][-1] == "0.500"


def test_unknown_location_exports_empty_geo_fields():
    rows = list(csv.reader(render_results_csv([_probe(location=None)], True, False).splitlines()))
    assert rows[1][5:11] == ["", "", "", "", "", ""]


def test_write_results_csv_is_atomic(fs):
    path = write_results_csv("out/ip.csv", [_probe()], tls=True, speed_tested=False)
    assert path.read_text(encoding="utf-8").startswith("address,port,tls")
    assert not (fs.base_path / "out" / "ip.csv.tmp").exists()


def test_write_results_csv_failure_raises_output_error(fs):
    fs.create_file("blocker", "not a directory")
    with pytest.raises(OutputError):
        write_results_csv("blocker/ip.csv", [_probe()], tls=True, speed_tested=False)


def test_read_results_csv_restores_rows(fs):
    results = [SpeedResult(_probe(), throughput_kbs=4 * 1024)]
    write_results_csv("ip.csv", results, tls=True, speed_tested=True)
    with open(fs.base_path / "ip.csv", "a", encoding="utf-8") as handle:
        handle.write("short,row\n")

    loaded = read_results_csv("ip.csv")

    assert len(loaded) == 1
    assert loaded[0].candidate == Candidate("10.0.0.1", 443)
    assert loaded[0].probe.city_localized == "洛杉矶"
    assert loaded[0].latency_ms == 87.0
    assert loaded[0].throughput_kbs == pytest.approx(4096.0)


def test_read_results_csv_without_speed_column(fs):
    write_results_csv("ip.csv", [_probe()], tls=True, speed_tested=False)
    assert read_results_csv("ip.csv")[0].throughput_kbs == 0.0


def test_read_results_csv_missing_file(fs):
    with pytest.raises(FileError):
        read_results_csv("missing.csv")


def test_read_results_csv_skips_rows_without_ip_literal(fs):
    write_results_csv("ip.csv", [_probe()], tls=True, speed_tested=True)
    with open(fs.base_path / "ip.csv", "a", encoding="utf-8") as handle:
        handle.write("garbage,443,true,LAX,US,,,,,,,10 ms,1.00\n")
        handle.write("example.com,443,true,LAX,US,,,,,,,10 ms,1.00\n")

    loaded = read_results_csv("ip.csv")

    assert [item.candidate.address for item in loaded] == ["10.0.0.1"]
