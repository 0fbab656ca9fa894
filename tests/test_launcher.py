from __future__ import annotations

from pathlib import Path


def _launcher(tmp_path: Path, **kw):
    from pwcli.browser.config import BrowserConfig
    from pwcli.browser.launcher import BrowserLauncher

    cfg = BrowserConfig(
        binary_path="/usr/bin/chromium",
        profile_path=str(tmp_path / "profile"),
        state_dir=str(tmp_path / "state"),
        **kw,
    )
    return BrowserLauncher(cfg)


def test_build_launch_command(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, cdp_port=9333, extra_flags=["--lang=en"])
    cmd = launcher.build_launch_command()

    assert cmd[0] == "/usr/bin/chromium"
    assert "--remote-debugging-port=9333" in cmd
    assert f"--user-data-dir={tmp_path / 'profile'}" in cmd
    assert "--headless=new" in cmd
    assert "--lang=en" in cmd
    assert cmd[-1] == "about:blank"

    headed = _launcher(tmp_path, headless=False).build_launch_command()
    assert "--headless=new" not in headed
    assert "--start-maximized" in headed


def test_attaches_when_endpoint_is_up(tmp_path: Path, monkeypatch) -> None:
    launcher = _launcher(tmp_path)
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: True)
    monkeypatch.setattr(launcher, "_spawn", lambda timeout: _never("must not spawn"))

    result = launcher.ensure_running()

    assert result.ok and result.attached and not result.started


def test_attach_mode_never_launches(tmp_path: Path, monkeypatch) -> None:
    launcher = _launcher(tmp_path, mode="attach")
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: False)
    monkeypatch.setattr(launcher, "_port_available", lambda timeout=0.2: True)
    monkeypatch.setattr(launcher, "_spawn", lambda timeout: _never("must not spawn"))

    result = launcher.ensure_running()

    assert not result.ok
    assert "no browser listening on CDP port 9222" in result.message


def test_rechecks_endpoint_under_launch_lock(tmp_path: Path, monkeypatch) -> None:
    launcher = _launcher(tmp_path)
    answers = iter([False, True])
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: next(answers))
    monkeypatch.setattr(launcher, "_spawn", lambda timeout: _never("must not spawn"))

    result = launcher.ensure_running(timeout=1.0)

    assert result.attached
    assert "another invocation" in result.message
    assert launcher.config.launch_lock_path.exists()


def test_spawns_when_port_free(tmp_path: Path, monkeypatch) -> None:
    from pwcli.browser.launcher import LaunchResult

    launcher = _launcher(tmp_path)
    spawned = []
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: False)
    monkeypatch.setattr(launcher, "_port_available", lambda timeout=0.2: True)

    def fake_spawn(timeout):
        spawned.append(timeout)
        return LaunchResult(["chromium"], True, "Browser launched")

    monkeypatch.setattr(launcher, "_spawn", fake_spawn)
    result = launcher.ensure_running(timeout=2.5)

    assert result.started and result.ok
    assert spawned == [2.5]


def test_port_taken_by_something_else(tmp_path: Path, monkeypatch) -> None:
    launcher = _launcher(tmp_path)
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: False)
    monkeypatch.setattr(launcher, "_port_available", lambda timeout=0.2: False)

    result = launcher.ensure_running(timeout=1.0)

    assert not result.ok
    assert "already in use" in result.message


def test_list_targets_tolerates_unreachable_endpoint(tmp_path: Path, monkeypatch) -> None:
    from pwcli.browser import launcher as launcher_mod
    from pwcli.browser.http_client import HttpClientError

    def refuse(url, timeout=2.0):
        raise HttpClientError("Connection refused")

    monkeypatch.setattr(launcher_mod, "http_get_json", refuse)
    launcher = _launcher(tmp_path)

    assert launcher.list_targets() == []
    assert launcher.cdp_ready() is False


def test_file_lock_is_exclusive(tmp_path: Path) -> None:
    from pwcli.browser.file_lock import FileLock, hold

    path = tmp_path / "launch-9222.lock"
    first = FileLock(path)
    second = FileLock(path)

    assert first.try_acquire() is True
    assert second.try_acquire() is False
    assert second.acquire(timeout=0.1, poll=0.02) is False
    assert "pid=" in path.read_text(encoding="utf-8")

    first.release()
    with hold(path, timeout=0.5) as acquired:
        assert acquired is True
        assert FileLock(path).try_acquire() is False
    assert second.try_acquire() is True
    second.release()


def _never(msg: str):
    import pytest

    pytest.fail(msg)
