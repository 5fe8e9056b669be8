import pytest

from edgeprobe.config import AppSettings, PipelineConfig


def test_defaults_match_documented_values():
    config = PipelineConfig()
    assert config.dial_timeout == 1.0
    assert config.response_timeout == 2.0
    assert config.speed_timeout == 5.0
    assert config.latency_threshold_ms == 300
    assert config.throughput_threshold_mbs == 3.0
    assert config.probe_workers == 100
    assert config.speed_workers == 5
    assert config.tls is True


def test_endpoints_follow_tls_flag():
    assert PipelineConfig().trace_endpoint == "https://speed.cloudflare.com/cdn-cgi/trace"
    plain = PipelineConfig(tls=False)
    assert plain.trace_endpoint == "http://speed.cloudflare.com/cdn-cgi/trace"
    assert plain.speed_endpoint.startswith("http://speed.cloudflare.com/__down")


def test_trace_marker_uses_client_identifier():
    assert PipelineConfig(user_agent="probe/2").trace_marker == "uag=probe/2"


@pytest.mark.parametrize(
    "field, value",
    [
        ("dial_timeout", 0),
        ("response_timeout", -1),
        ("latency_threshold_ms", -5),
        ("throughput_threshold_mbs", -0.1),
        ("probe_workers", 0),
        ("speed_workers", -1),
        ("user_agent", ""),
    ],
)
def test_invalid_values_are_rejected(field, value):
    with pytest.raises(ValueError):
        PipelineConfig(**{field: value})


def test_config_is_immutable():
    config = PipelineConfig()
    with pytest.raises(AttributeError):
        config.tls = False  # type: ignore[misc]


def test_from_settings_applies_overrides_and_ignores_none():
    config = PipelineConfig.from_settings(
        AppSettings(), latency_threshold_ms=0, speed_workers=None, tls=False
    )
    assert config.latency_threshold_ms == 0
    assert config.speed_workers == AppSettings.SPEED_TEST_WORKERS
    assert config.tls is False


def test_from_settings_rejects_unknown_fields():
    with pytest.raises(TypeError, match="bogus"):
        PipelineConfig.from_settings(AppSettings(), bogus=1)


def test_speed_test_disabled_with_zero_workers():
    assert PipelineConfig(speed_workers=0).speed_test_enabled is False
    assert PipelineConfig().speed_test_enabled is True


def test_describe_labels_disabled_filters():
    lines = PipelineConfig(
        latency_threshold_ms=0, throughput_threshold_mbs=0, speed_workers=0, tls=False
    ).describe()
    assert "Latency threshold: 0 ms (filter disabled)" in lines
    assert "Throughput threshold: 0.0 MB/s (filter disabled)" in lines
    assert "Speed-test workers: 0 (speed test disabled)" in lines
    assert "TLS enabled: false" in lines


def test_describe_default_has_no_disabled_labels():
    assert not any("disabled" in line for line in PipelineConfig().describe())
