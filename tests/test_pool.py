from __future__ import annotations

import threading

import pytest


def _config(tmp_path, **kw):
    from pwcli.browser.config import BrowserConfig

    return BrowserConfig(binary_path="chromium", profile_path=str(tmp_path / "profile"), state_dir=str(tmp_path), **kw)


class Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class FakeHandle:
    def __init__(self, name: str) -> None:
        self.name = name
        self.healthy = True
        self.pings = 0
        self.closed = False

    def ping(self, timeout: float) -> None:
        from pwcli.browser.http_client import HttpClientError

        self.pings += 1
        if not self.healthy:
            raise HttpClientError("connection reset")

    def close(self) -> None:
        self.closed = True


class FakeLauncher:
    def __init__(self, ok: bool = True, message: str = "Attached") -> None:
        self.ok = ok
        self.message = message
        self.calls = 0

    def ensure_running(self):
        from pwcli.browser.launcher import LaunchResult

        self.calls += 1
        return LaunchResult([], False, self.message, attached=self.ok)


def _pool(tmp_path, launcher=None, **kw):
    from pwcli.browser.pool import ConnectionPool

    launcher = launcher or FakeLauncher()
    opened: list[FakeHandle] = []
    ports: list[int] = []

    def factory(cfg):
        ports.append(cfg.cdp_port)
        return launcher

    def connect(_launcher, timeout_ms):
        handle = FakeHandle(f"h{len(opened)}")
        opened.append(handle)
        return handle

    clock = kw.pop("clock", Clock())
    pool = ConnectionPool(
        _config(tmp_path, **kw), launcher_factory=factory, connect=connect, clock=clock, retry_delay=0
    )
    return pool, opened, ports, launcher


def test_endpoint_key_round_trip() -> None:
    from pwcli.browser.errors import BrowserConnectionError
    from pwcli.browser.pool import endpoint_key, port_of

    assert endpoint_key(9333) == "127.0.0.1:9333"
    assert port_of("127.0.0.1:9333") == 9333
    with pytest.raises(BrowserConnectionError):
        port_of("no-port")


def test_healthy_handle_is_reused(tmp_path) -> None:
    pool, opened, _, launcher = _pool(tmp_path)

    with pool.connection() as first:
        pass
    with pool.connection() as second:
        assert pool.entries["127.0.0.1:9222"].ref_count == 1

    assert first is second
    assert len(opened) == 1
    assert launcher.calls == 1
    assert pool.entries["127.0.0.1:9222"].ref_count == 0


def test_unhealthy_handle_is_replaced(tmp_path) -> None:
    pool, opened, _, _ = _pool(tmp_path)

    first = pool.acquire()
    pool.release(first)
    first.healthy = False
    second = pool.acquire()

    assert second is not first
    assert first.closed is True
    # Health check retried before giving up on the old handle.
    assert first.pings == 1 + 3
    assert len(opened) == 2


def test_other_port_gets_its_own_launcher_config(tmp_path) -> None:
    pool, _, ports, _ = _pool(tmp_path)

    pool.acquire("127.0.0.1:9333")
    pool.acquire()

    assert ports == [9333, 9222]
    assert set(pool.entries) == {"127.0.0.1:9333", "127.0.0.1:9222"}


def test_launch_failure_raises_connection_error(tmp_path) -> None:
    from pwcli.browser.errors import BrowserConnectionError

    launcher = FakeLauncher(ok=False, message="Attach mode: no browser listening on CDP port 9222")
    pool, opened, _, _ = _pool(tmp_path, launcher=launcher, mode="attach")

    with pytest.raises(BrowserConnectionError) as excinfo:
        pool.acquire()

    assert "no browser listening" in str(excinfo.value)
    assert "--remote-debugging-port=9222" in excinfo.value.suggestion
    assert opened == []
    assert pool.entries == {}


def test_new_handle_failing_health_check_is_an_error(tmp_path) -> None:
    from pwcli.browser.errors import BrowserConnectionError
    from pwcli.browser.pool import ConnectionPool

    dead = FakeHandle("dead")
    dead.healthy = False
    pool = ConnectionPool(
        _config(tmp_path, health_retries=2),
        launcher_factory=lambda cfg: FakeLauncher(),
        connect=lambda launcher, timeout_ms: dead,
        retry_delay=0,
    )

    with pytest.raises(BrowserConnectionError):
        pool.acquire()
    assert dead.pings == 2
    assert dead.closed is True


def test_connect_errors_are_retried_then_wrapped(tmp_path) -> None:
    from pwcli.browser.errors import BrowserConnectionError
    from pwcli.browser.http_client import HttpClientError
    from pwcli.browser.pool import ConnectionPool

    attempts = []

    def connect(launcher, timeout_ms):
        attempts.append(timeout_ms)
        raise HttpClientError("Connection refused")

    pool = ConnectionPool(
        _config(tmp_path, timeout_ms=1234),
        launcher_factory=lambda cfg: FakeLauncher(),
        connect=connect,
        retry_delay=0,
    )
    with pytest.raises(BrowserConnectionError) as excinfo:
        pool.acquire()

    assert attempts == [1234, 1234, 1234]
    assert isinstance(excinfo.value.__cause__, HttpClientError)


def test_idle_handles_are_evicted(tmp_path) -> None:
    clock = Clock()
    pool, opened, _, _ = _pool(tmp_path, clock=clock, pool_idle_s=60)

    handle = pool.acquire()
    pool.release(handle)
    clock.now += 30
    assert pool.evict_idle() == 0

    clock.now += 31
    assert pool.evict_idle() == 1
    assert handle.closed is True
    assert pool.entries == {}


def test_referenced_handles_are_not_evicted(tmp_path) -> None:
    clock = Clock()
    pool, _, _, _ = _pool(tmp_path, clock=clock, pool_idle_s=1)

    handle = pool.acquire()
    clock.now += 100
    assert pool.evict_idle() == 0
    assert handle.closed is False


def test_shutdown_closes_everything(tmp_path) -> None:
    pool, opened, _, _ = _pool(tmp_path)
    pool.acquire()
    pool.acquire("127.0.0.1:9333")

    assert pool.shutdown() is True
    assert all(h.closed for h in opened)
    assert pool.entries == {}
    assert pool.shutdown() is True


def test_shutdown_abandons_hanging_close(tmp_path) -> None:
    from pwcli.browser.pool import ConnectionPool

    release = threading.Event()

    class HangingHandle(FakeHandle):
        def close(self) -> None:
            release.wait(5)

    pool = ConnectionPool(
        _config(tmp_path),
        launcher_factory=lambda cfg: FakeLauncher(),
        connect=lambda launcher, timeout_ms: HangingHandle("stuck"),
        retry_delay=0,
    )
    pool.acquire()
    try:
        assert pool.shutdown(timeout_ms=50) is False
    finally:
        release.set()
