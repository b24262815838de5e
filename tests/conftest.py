from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest  # type: ignore[import]

from clients.release_source import ReleaseDataSource
from configs.config import Config
from utils.release_diff import find_previous_release, subtract_commits
from utils.release_models import CommitAuthor, PullRequestRef, RawCommit, Release


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def build_release(tag: str, created_at: datetime, body: Optional[str] = None) -> Release:
    return Release(tag_name=tag, name=tag, body=body, created_at=created_at, published_at=created_at)


def build_commit(sha: str, message: str, author: str = "alice", date: Optional[datetime] = None) -> RawCommit:
    return RawCommit(
        sha=sha,
        message=message,
        author=CommitAuthor(name=author.title(), email=f"{author}@example.com", username=author),
        date=date or utc(2024, 1, 1),
    )


class FakeReleaseSource(ReleaseDataSource):
    """In-memory organization: releases per repo and the commits reachable from each tag."""

    def __init__(self) -> None:
        self.releases: Dict[str, List[Release]] = {}
        self.commits: Dict[Tuple[str, str], List[RawCommit]] = {}
        self.pull_requests: Dict[str, List[PullRequestRef]] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, ...]] = []
        self.closed = False

    def add_release(self, repo: str, release: Release, commits: Sequence[RawCommit] = ()) -> None:
        self.releases.setdefault(repo, []).append(release)
        self.commits[(repo, release.tag_name)] = list(commits)

    def get_release(self, repo: str, tag: str) -> Optional[Release]:
        self.calls.append(("get_release", repo, tag))
        if repo in self.failures:
            raise self.failures[repo]
        return next((r for r in self.releases.get(repo, []) if r.tag_name == tag), None)

    def get_latest_release(self, repo: str) -> Optional[Release]:
        self.calls.append(("get_latest_release", repo))
        releases = self.releases.get(repo, [])
        return max(releases, key=lambda r: r.created_at) if releases else None

    def list_releases(self, repo: str, limit: int) -> List[Release]:
        self.calls.append(("list_releases", repo))
        return sorted(self.releases.get(repo, []), key=lambda r: r.created_at, reverse=True)[:limit]

    def get_previous_release(self, repo: str, current_release: Release) -> Optional[Release]:
        return find_previous_release(self.releases.get(repo, []), current_release)

    def get_commits_between(self, repo: str, from_tag: str, to_tag: str) -> List[RawCommit]:
        self.calls.append(("get_commits_between", repo, from_tag, to_tag))
        return subtract_commits(self.commits.get((repo, to_tag), []), self.commits.get((repo, from_tag), []))

    def get_all_commits_until(self, repo: str, tag: str) -> List[RawCommit]:
        self.calls.append(("get_all_commits_until", repo, tag))
        return list(self.commits.get((repo, tag), []))

    def get_pull_requests_for_commits(self, repo: str, shas: Sequence[str]) -> List[PullRequestRef]:
        self.calls.append(("get_pull_requests_for_commits", repo, tuple(shas)))
        return list(self.pull_requests.get(repo, []))

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _no_metrics(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(Config, "METRICS_ENABLED", False)


@pytest.fixture()
def source() -> FakeReleaseSource:
    return FakeReleaseSource()


@pytest.fixture()
def release_factory():
    return build_release


@pytest.fixture()
def commit_factory():
    return build_commit
