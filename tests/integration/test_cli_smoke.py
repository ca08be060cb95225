import json
from pathlib import Path

import pytest

from dashsync import cli
from dashsync.cli import main, parse_args, run_command
from dashsync.common.http import HttpRequestError


class FakeTransport:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.closed = False

    async def list_records(self, path):
        if self.fail:
            raise HttpRequestError("HTTP status: 503", status=503)
        if path == "/locates/":
            return [{"id": 1, "created_at": "2026-10-19T08:00:00Z"}]
        return {"data": [{"id": 7, "tech_report_submitted": True, "elapsed_time": "2026-10-19T07:00:00Z"}]}

    def close(self):
        self.closed = True


def _overlay(tmp_path: Path) -> Path:
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "sync.yml").write_text(
        f"""push:
  enabled: false
storage:
  mirror_dir: "{(tmp_path / 'mirror').as_posix()}"
""",
        encoding="utf-8",
    )
    return overlay


def _args(tmp_path: Path, *extra: str):
    return parse_args(
        [
            *extra,
            "--config-dir",
            "config",
            "--overlay-config-dir",
            str(_overlay(tmp_path)),
            "--session-id",
            "session-test",
            "--log-dir",
            str(tmp_path / "logs"),
        ]
    )


@pytest.mark.integration
def test_cli_snapshot_writes_view(monkeypatch, tmp_path: Path):
    transport = FakeTransport()
    monkeypatch.setattr(cli, "build_transport", lambda _config, _token: transport)
    out = tmp_path / "out" / "snapshot.json"

    exit_code = run_command(_args(tmp_path, "snapshot", "--out", str(out)))

    assert exit_code == 0
    assert transport.closed
    view = json.loads(out.read_text(encoding="utf-8"))
    assert view["work_orders"]["REPORT_SUBMITTED"] == 1
    assert view["locates"]["PENDING"] == 1
    assert view["reads"] == {
        "locates": {"ok": True, "source": "remote"},
        "work_orders": {"ok": True, "source": "remote"},
    }
    log_lines = (tmp_path / "logs" / "session-test.log.jsonl").read_text(encoding="utf-8").splitlines()
    events = [json.loads(line)["event"] for line in log_lines]
    assert "FETCH_END" in events
    assert all(json.loads(line)["session_id"] == "session-test" for line in log_lines)


@pytest.mark.integration
def test_cli_snapshot_reports_partial_failure(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(cli, "build_transport", lambda _config, _token: FakeTransport(fail=True))

    exit_code = run_command(_args(tmp_path, "snapshot", "--out", str(tmp_path / "snapshot.json")))

    assert exit_code == 10


@pytest.mark.integration
def test_cli_watch_runs_for_duration(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(cli, "build_transport", lambda _config, _token: FakeTransport())

    exit_code = run_command(_args(tmp_path, "watch", "--duration", "0.05"))

    assert exit_code == 0
    assert list((tmp_path / "mirror").glob("*.json")) == []


def test_cli_missing_config_is_hard_failure(tmp_path: Path):
    assert main(["snapshot", "--config-dir", str(tmp_path / "missing")]) == 20
