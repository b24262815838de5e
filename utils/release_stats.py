#!/usr/bin/env python3
from __future__ import annotations

from typing import Iterable, List, Sequence

from utils.release_models import CommitType, ComponentRelease, EnrichedCommit, Released, ReleaseStats, ReleaseSummary


def _sorted_unique(values: Iterable[str]) -> List[str]:
	return sorted(set(values))


def compute_stats(commits: Sequence[EnrichedCommit]) -> ReleaseStats:
	"""Fold enriched commits into per-component statistics."""
	return ReleaseStats(
		commit_count=len(commits),
		contributors=_sorted_unique(c.author for c in commits),
		breaking_changes=sum(1 for c in commits if c.breaking),
		features=sum(1 for c in commits if c.commit_type == CommitType.FEATURE),
		fixes=sum(1 for c in commits if c.commit_type == CommitType.FIX),
	)


def summarize(components: Sequence[ComponentRelease]) -> ReleaseSummary:
	"""Cross-repository totals over already computed component stats."""
	released = [c.status for c in components if isinstance(c.status, Released)]
	contributors: List[str] = []
	for status in released:
		contributors.extend(status.stats.contributors)
	return ReleaseSummary(
		total_repos=len(components),
		updated_repos=len(released),
		total_commits=sum(status.stats.commit_count for status in released),
		contributors=_sorted_unique(contributors),
	)
