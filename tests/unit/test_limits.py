import sys

import pytest

from edgeprobe import limits


def test_non_linux_is_left_alone(monkeypatch):
    monkeypatch.setattr(limits.sys, "platform", "darwin")
    assert limits.raise_open_file_limit() is None


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="RLIMIT_NOFILE handling is Linux only")
def test_raise_open_file_limit_on_linux(monkeypatch):
    import resource

    calls = []
    monkeypatch.setattr(resource, "getrlimit", lambda kind: (1024, 4096))
    monkeypatch.setattr(resource, "setrlimit", lambda kind, value: calls.append(value))

    assert limits.raise_open_file_limit(10000) == 4096
    assert calls == [(4096, 4096)]


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="RLIMIT_NOFILE handling is Linux only")
def test_raise_open_file_limit_already_high(monkeypatch):
    import resource

    monkeypatch.setattr(resource, "getrlimit", lambda kind: (20000, 20000))
    monkeypatch.setattr(
        resource, "setrlimit", lambda kind, value: pytest.fail("setrlimit should not be called")
    )
    assert limits.raise_open_file_limit(10000) == 20000


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="RLIMIT_NOFILE handling is Linux only")
def test_raise_open_file_limit_failure_is_not_fatal(monkeypatch):
    import resource

    def refuse(kind, value):
        raise ValueError("not allowed")

    monkeypatch.setattr(resource, "getrlimit", lambda kind: (1024, resource.RLIM_INFINITY))
    monkeypatch.setattr(resource, "setrlimit", refuse)
    assert limits.raise_open_file_limit(10000) == 1024
