import pytest

from edgeprobe.models import Candidate, LocationRecord, ProbeResult, SpeedResult


@pytest.mark.parametrize("port", [0, 65536, -1])
def test_candidate_rejects_out_of_range_port(port):
    with pytest.raises(ValueError):
        Candidate("10.0.0.1", port)


@pytest.mark.parametrize("address", ["garbage", "example.com", "10.0.0.256", ""])
def test_candidate_rejects_non_ip_address(address):
    with pytest.raises(ValueError, match="Invalid IP address"):
        Candidate(address, 443)


def test_candidate_endpoint_brackets_ipv6():
    assert Candidate("10.0.0.1", 443).endpoint == "10.0.0.1:443"
    assert Candidate("2606:4700::1", 443).endpoint == "[2606:4700::1]:443"
    assert str(Candidate("10.0.0.1", 80)) == "10.0.0.1 80"


def test_candidate_is_hashable_and_comparable():
    assert len({Candidate("10.0.0.1", 443), Candidate("10.0.0.1", 443)}) == 1


def test_probe_result_without_location_has_empty_geo():
    result = ProbeResult.build(Candidate("10.0.0.1", 443), "XYZ", "US", 120.0)
    assert result.city == ""
    assert result.flag == ""
    assert not result.has_location


def test_probe_result_with_location_fills_geo():
    location = LocationRecord(
        iata="LAX",
        region="North America",
        city="Los Angeles",
        region_localized="北美",
        country="United States",
        city_localized="洛杉矶",
        flag="🇺🇸",
    )
    result = ProbeResult.build(Candidate("10.0.0.1", 443), "LAX", "US", 87.6, location)
    assert result.city == "Los Angeles"
    assert result.city_localized == "洛杉矶"
    assert result.has_location
    data = result.to_dict()
    assert data["datacenter"] == "LAX"
    assert data["latency_ms"] == 87.6


def test_speed_result_converts_units():
    probe = ProbeResult.build(Candidate("10.0.0.1", 443), "LAX", "US", 50.0)
    result = SpeedResult(probe, throughput_kbs=3072.0, bytes_received=10)
    assert result.throughput_mbs == 3.0
    assert result.latency_ms == 50.0
    assert result.candidate == probe.candidate
    assert result.to_dict()["throughput_kbs"] == 3072.0
