#!/usr/bin/env python3
"""Interface of the repository-hosting service used by the aggregator.

The diff engine and aggregator only talk to this interface, so tests can run
against an in-memory source and the GitHub REST client stays replaceable.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from utils.release_models import PullRequestRef, RawCommit, Release


class ReleaseDataSource(ABC):
    """Release, commit and pull request lookups for one organization."""

    @abstractmethod
    def get_release(self, repo: str, tag: str) -> Optional[Release]:
        """Release for ``tag``, or None when the tag has no release."""
        raise NotImplementedError

    @abstractmethod
    def get_latest_release(self, repo: str) -> Optional[Release]:
        raise NotImplementedError

    @abstractmethod
    def list_releases(self, repo: str, limit: int) -> List[Release]:
        """Up to ``limit`` releases, most recent first."""
        raise NotImplementedError

    @abstractmethod
    def get_previous_release(self, repo: str, current_release: Release) -> Optional[Release]:
        raise NotImplementedError

    @abstractmethod
    def get_commits_between(self, repo: str, from_tag: str, to_tag: str) -> List[RawCommit]:
        """Commits reachable from ``to_tag`` but not from ``from_tag``."""
        raise NotImplementedError

    @abstractmethod
    def get_all_commits_until(self, repo: str, tag: str) -> List[RawCommit]:
        raise NotImplementedError

    @abstractmethod
    def get_pull_requests_for_commits(self, repo: str, shas: Sequence[str]) -> List[PullRequestRef]:
        raise NotImplementedError

    def close(self) -> None:
        """Release any held resources."""
