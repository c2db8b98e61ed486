import yaml
from click.testing import CliRunner
from rich.console import Console

from cli.bantay_cli.main import cli
from cli.bantay_cli.commands import insights as insights_cmd
from cli.bantay_cli.commands import ratelimit as ratelimit_cmd
from cli.bantay_cli.commands import status as status_cmd
from cli.bantay_cli.commands import threats as threats_cmd
from monitor.bantay.config.loader import load_config
from monitor.bantay.config.schema import BantayConfig


def fake(responses, calls):
    def run_command(method, params=None, socket_path=None):
        calls.append((method, params))
        result = responses[method]
        if isinstance(result, Exception):
            raise result
        return result
    return run_command


def test_status_not_running(monkeypatch):
    monkeypatch.setattr(status_cmd, "run_command", fake({"status": ConnectionError("no socket")}, []))
    result = CliRunner().invoke(cli, ["status"])
    assert result.exit_code == 1
    assert "Monitor not running" in result.output


def test_status_lists_rules(monkeypatch):
    data = {
        "status": "running", "version": "0.1.0", "uptime": 3.0, "audit_enabled": True,
        "monitored_keys": 2, "rate_limit_entries": 1,
        "rules": {"login": {"max_requests": 5, "window_ms": 900_000}},
        "detections": {"xss_attempt": 1},
    }
    monkeypatch.setattr(status_cmd, "run_command", fake({"status": data}, []))
    result = CliRunner().invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "login" in result.output
    assert "xss_attempt: 1" in result.output


def test_threats_table(monkeypatch):
    calls = []
    rows = [{
        "id": "THR-abc", "timestamp": "2026-01-01T00:00:00+00:00", "event_type": "xss_attempt",
        "severity": "high", "source_ip": "1.2.3.4", "user_id": None, "mitigated": False,
    }]
    monkeypatch.setattr(threats_cmd, "run_command", fake({"threats": rows}, calls))
    monkeypatch.setattr(threats_cmd, "console", Console(width=200))
    result = CliRunner().invoke(cli, ["threats", "-n", "3"])
    assert result.exit_code == 0
    assert calls == [("threats", {"limit": 3})]
    assert "THR-abc" in result.output


def test_insights_and_stats(monkeypatch):
    responses = {
        "insights": {"active_threats": 1, "blocked_keys": 0, "monitored_keys": 4, "avg_threat_level": "low"},
        "statistics": {"total_events": 9, "critical_events": 0, "threat_events": 2,
                       "failed_logins": 3, "suspicious_activities": 1},
    }
    calls = []
    monkeypatch.setattr(insights_cmd, "run_command", fake(responses, calls))
    runner = CliRunner()
    assert "Monitored clients: 4" in runner.invoke(cli, ["insights"]).output
    result = runner.invoke(cli, ["stats", "-t", "7d"])
    assert result.exit_code == 0
    assert "failed logins" in result.output
    assert calls[-1] == ("statistics", {"timeframe": "7d"})


def test_ratelimit_commands(monkeypatch):
    responses = {
        "ratelimit_status": {"count": 5, "reset_time": 1_700_000_900_000, "blocked": True},
        "ratelimit_reset": {"reset": True},
    }
    calls = []
    monkeypatch.setattr(ratelimit_cmd, "run_command", fake(responses, calls))
    runner = CliRunner()

    result = runner.invoke(cli, ["ratelimit", "status", "ip:1.2.3.4", "login"])
    assert "blocked" in result.output
    assert "2023-11-14" in result.output

    result = runner.invoke(cli, ["ratelimit", "reset", "ip:1.2.3.4", "login"])
    assert "Reset" in result.output
    assert calls[-1] == ("ratelimit_reset", {"identifier": "ip:1.2.3.4", "rule": "login"})


def test_init_config_writes_loadable_defaults(tmp_path):
    path = tmp_path / "bantay" / "config.yml"
    runner = CliRunner()

    assert runner.invoke(cli, ["init-config", str(path)]).exit_code == 0
    assert load_config(path) == BantayConfig()
    assert yaml.safe_load(path.read_text())["rate_limits"]["login"]["max_requests"] == 5

    assert runner.invoke(cli, ["init-config", str(path)]).exit_code == 1
    assert runner.invoke(cli, ["init-config", str(path), "--force"]).exit_code == 0
