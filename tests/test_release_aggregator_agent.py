from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest  # type: ignore[import]

from agents import release_aggregator_agent
from agents.release_aggregator_agent import AggregatorOptions, ReleaseAggregator, main
from clients.github_client import GithubApiError
from utils.release_models import NoRelease, Released


def _at(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest.fixture()
def org(source, release_factory, commit_factory):
    base = [commit_factory("a", "chore: init", author="alice")]
    source.add_release("api", release_factory("v1.0.0", _at(2023, 1, 1)), base)
    source.add_release(
        "api",
        release_factory("v2.0.0", _at(2024, 1, 1), body="Big release"),
        [
            commit_factory("d", "feat: add X (#1)", author="bob"),
            commit_factory("c", "fix: bug Y, closes #9", author="alice"),
            commit_factory("b", "docs: update", author="bob"),
        ] + base,
    )
    source.add_release("web", release_factory("v1.9.0", _at(2024, 1, 1)))
    return source


def test_aggregate_keeps_repository_order_and_summary(org) -> None:
    aggregator = ReleaseAggregator(org, AggregatorOptions(categorize_commits=True))

    release = aggregator.aggregate("v2.0.0", ["web", "api"])

    assert [c.repository for c in release.components] == ["web", "api"]
    web, api = (c.status for c in release.components)
    assert isinstance(web, NoRelease)
    assert web.latest_version == "v1.9.0"
    assert isinstance(api, Released)
    assert api.stats.commit_count == 3
    assert release.summary.total_repos == 2
    assert release.summary.updated_repos == 1
    assert release.summary.total_commits == 3
    assert release.summary.contributors == ["alice", "bob"]
    assert release.date.tzinfo is not None


def test_aggregate_failure_aborts_run(org) -> None:
    org.failures["web"] = GithubApiError("boom", code="RATE_LIMIT")
    aggregator = ReleaseAggregator(org, AggregatorOptions())

    with pytest.raises(GithubApiError):
        aggregator.aggregate("v2.0.0", ["api", "web"])


def test_check_release(org) -> None:
    aggregator = ReleaseAggregator(org, AggregatorOptions())
    assert aggregator.check_release("v2.0.0", ["api", "web"]) == {"api": True, "web": False}


def test_list_recent_releases(org) -> None:
    aggregator = ReleaseAggregator(org, AggregatorOptions())

    listing = aggregator.list_recent_releases(["api", "web", "none"], 1)

    assert [r.tag_name for r in listing["api"]] == ["v2.0.0"]
    assert listing["none"] == []


def test_cli_generate_json_to_file(org, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(release_aggregator_agent, "_build_source", lambda args: org)
    output = tmp_path / "release.json"

    with pytest.raises(SystemExit) as excinfo:
        main(["--token", "t", "--org", "acme", "generate", "--version", "v2.0.0", "--repos", "api,web",
              "--format", "json", "--categorize", "--output", str(output)])

    assert excinfo.value.code == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["summary"]["updated_repos"] == 1
    assert "written" in capsys.readouterr().out
    assert org.closed is True


def test_cli_generate_markdown_to_stdout(org, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(release_aggregator_agent, "_build_source", lambda args: org)

    with pytest.raises(SystemExit) as excinfo:
        main(["generate", "-v", "v2.0.0", "-r", "api", "--categorize"])

    assert excinfo.value.code == 0
    out = capsys.readouterr().out
    assert "# Release v2.0.0" in out
    assert "#### ✨ Features" in out


def test_cli_check_exit_codes(org, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(release_aggregator_agent, "_build_source", lambda args: org)

    with pytest.raises(SystemExit) as ok:
        main(["check", "--version", "v1.0.0", "--repos", "api"])
    with pytest.raises(SystemExit) as missing:
        main(["check", "--version", "v2.0.0", "--repos", "api,web"])

    assert ok.value.code == 0
    assert missing.value.code == 1
    out = capsys.readouterr().out
    assert "✓ api: Release v2.0.0 found" in out
    assert "✗ web: Release v2.0.0 not found" in out


def test_cli_list(org, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(release_aggregator_agent, "_build_source", lambda args: org)

    with pytest.raises(SystemExit) as excinfo:
        main(["list", "--repos", "api,ghost", "--limit", "5"])

    assert excinfo.value.code == 0
    out = capsys.readouterr().out
    assert "  - v2.0.0: 2024-01-01T00:00:00+00:00" in out
    assert "  No releases found" in out


def test_cli_reports_api_errors(org, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    org.failures["api"] = GithubApiError("rate limited", code="RATE_LIMIT")
    monkeypatch.setattr(release_aggregator_agent, "_build_source", lambda args: org)

    with pytest.raises(SystemExit) as excinfo:
        main(["generate", "--version", "v2.0.0", "--repos", "api"])

    assert excinfo.value.code == 1
    assert "Error: rate limited" in capsys.readouterr().err
    assert org.closed is True


def test_cli_reports_missing_template(org, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(release_aggregator_agent, "_build_source", lambda args: org)

    with pytest.raises(SystemExit) as excinfo:
        main(["generate", "--version", "v2.0.0", "--repos", "api", "--template", str(tmp_path / "none.j2")])

    assert excinfo.value.code == 1
    assert "Error:" in capsys.readouterr().err
