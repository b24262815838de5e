#!/usr/bin/env python3
"""Release diff: which commits a release introduced.

Resolves the release for a version tag, its chronological predecessor and the
commits between them, producing a ``Released`` or ``NoRelease`` status for one
repository.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from clients.release_source import ReleaseDataSource
from utils.commit_analyzer import analyze_commits, link_pull_requests, plain_commit
from utils.release_models import ComponentStatus, EnrichedCommit, NoRelease, RawCommit, Release, Released
from utils.release_stats import compute_stats

# Set up logging
logger = logging.getLogger(__name__)


def find_previous_release(releases: Iterable[Release], current: Release) -> Optional[Release]:
    """Release created most recently before ``current``.

    Args:
        releases: Candidate releases of the same repository, any order
        current: The target release

    Returns:
        The nearest strictly older release, or None for a first release
    """
    previous: Optional[Release] = None
    for release in releases:
        if release.created_at < current.created_at:
            if previous is None or release.created_at > previous.created_at:
                previous = release
    return previous


def subtract_commits(to_commits: Sequence[RawCommit], from_commits: Iterable[RawCommit]) -> List[RawCommit]:
    """Commits of ``to_commits`` whose sha is absent from ``from_commits``.

    Order of ``to_commits`` is preserved.
    """
    excluded = {commit.sha for commit in from_commits}
    return [commit for commit in to_commits if commit.sha not in excluded]


class ReleaseDiffEngine:
    """Resolves per-repository release status against a data source."""

    def __init__(
        self,
        source: ReleaseDataSource,
        *,
        categorize: bool = True,
        include_prs: bool = False,
    ):
        self.source = source
        self.categorize = categorize
        self.include_prs = include_prs

    def resolve(self, repo: str, version: str) -> ComponentStatus:
        """Resolve the status of ``repo`` for ``version``.

        Args:
            repo: Repository name within the organization
            version: Release tag to look up

        Returns:
            Released with the enriched commit range, or NoRelease with the
            latest known release

        Raises:
            Any data source error other than a missing release
        """
        release = self.source.get_release(repo, version)
        if release is None:
            latest = self.source.get_latest_release(repo)
            logger.info(f"{repo}: no release {version} (latest: {latest.tag_name if latest else 'none'})")
            return NoRelease(
                latest_version=latest.tag_name if latest else None,
                latest_date=latest.created_at if latest else None,
            )

        previous = self.source.get_previous_release(repo, release)
        raw_commits = self.fetch_commit_range(repo, release, previous)
        commits = self.enrich(raw_commits)
        if self.include_prs and commits:
            commits = self.attach_pull_requests(repo, commits)
        logger.info(f"✓ {repo}: {release.tag_name} has {len(commits)} commits since "
                    f"{previous.tag_name if previous else 'the beginning'}")
        return Released(
            current_version=release.tag_name,
            previous_version=previous.tag_name if previous else None,
            release_date=release.created_at,
            commits=commits,
            release_notes=release.body or None,
            stats=compute_stats(commits),
        )

    def fetch_commit_range(self, repo: str, release: Release, previous: Optional[Release]) -> List[RawCommit]:
        if previous is not None:
            return self.source.get_commits_between(repo, previous.tag_name, release.tag_name)
        return self.source.get_all_commits_until(repo, release.tag_name)

    def enrich(self, raw_commits: Sequence[RawCommit]) -> List[EnrichedCommit]:
        if self.categorize:
            return analyze_commits(raw_commits)
        return [plain_commit(commit) for commit in raw_commits]

    def attach_pull_requests(self, repo: str, commits: List[EnrichedCommit]) -> List[EnrichedCommit]:
        pull_requests = self.source.get_pull_requests_for_commits(repo, [commit.sha for commit in commits])
        logger.debug(f"{repo}: {len(pull_requests)} pull requests found for {len(commits)} commits")
        return link_pull_requests(commits, pull_requests)
