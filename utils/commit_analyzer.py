#!/usr/bin/env python3
"""Commit classification and enrichment.

Turns raw commits into ``EnrichedCommit`` values: conventional-commit type,
breaking-change flag, cleaned subject line, referenced issues and the pull
request number quoted in the subject. Everything here is pure and never raises
on unusual input; commits that match no pattern simply carry no metadata.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from utils.release_models import CommitType, EnrichedCommit, PullRequestRef, RawCommit


# Evaluated top to bottom; the first matching prefix decides the type.
TYPE_PREFIXES: List[Tuple[str, CommitType]] = [
    ("feat", CommitType.FEATURE),
    ("feature", CommitType.FEATURE),
    ("fix", CommitType.FIX),
    ("bugfix", CommitType.FIX),
    ("docs", CommitType.DOCUMENTATION),
    ("documentation", CommitType.DOCUMENTATION),
    ("perf", CommitType.PERFORMANCE),
    ("performance", CommitType.PERFORMANCE),
    ("refactor", CommitType.REFACTOR),
    ("test", CommitType.TEST),
    ("tests", CommitType.TEST),
    ("build", CommitType.BUILD),
    ("ci", CommitType.CI),
    ("cd", CommitType.CI),
    ("chore", CommitType.CHORE),
    ("style", CommitType.STYLE),
]

BREAKING_MARKER = "BREAKING CHANGE"

ISSUE_PATTERN = re.compile(
    r"(?:(?:fix|fixes|fixed|close|closes|closed|resolve|resolves|resolved)\s+)?#(\d+)"
)
PR_PATTERN = re.compile(r"\(#(\d+)\)")


def first_line(message: str) -> str:
    """Return the first line of a commit message, or an empty string."""
    if not message:
        return ""
    lines = message.splitlines()
    return lines[0] if lines else ""


def detect_type(message: str) -> Optional[CommitType]:
    """Classify a commit by the prefix of its lower-cased first line."""
    subject = first_line(message).lower()
    for prefix, commit_type in TYPE_PREFIXES:
        if subject.startswith(prefix):
            return commit_type
    return None


def is_breaking(message: str) -> bool:
    subject = first_line(message).lower()
    return "breaking" in subject or "!:" in subject or BREAKING_MARKER in (message or "")


def _matched_prefix(subject: str) -> Optional[str]:
    """Longest type prefix of the commit type that ``subject`` starts with.

    Only aliases of the matched type are considered, so ``feature: x`` loses
    ``feature`` rather than ``feat``. A prefix glued to a longer word is kept.
    """
    lowered = subject.lower()
    matched_type = detect_type(subject)
    if matched_type is None:
        return None
    aliases = [prefix for prefix, commit_type in TYPE_PREFIXES if commit_type is matched_type]
    prefix = max((p for p in aliases if lowered.startswith(p)), key=len)
    rest = subject[len(prefix):]
    if rest and rest[0].isalnum():
        # "testing things" keeps its first word
        return None
    return prefix


def clean_message(message: str) -> str:
    """Reduce a commit message to a capitalized subject without its type prefix.

    ``"feat(api)!: add endpoint"`` becomes ``"Add endpoint"``.
    """
    subject = first_line(message)
    idx = 0
    while idx < len(subject) and not subject[idx].isalpha():
        idx += 1
    subject = subject[idx:]

    prefix = _matched_prefix(subject)
    if prefix:
        subject = subject[len(prefix):]
        scope = re.match(r"\([^)]*\)", subject)
        if scope:
            subject = subject[scope.end():]
        subject = subject.lstrip("!")

    subject = subject.lstrip(":").lstrip("(").lstrip(")").strip()
    if not subject:
        return ""
    return subject[0].upper() + subject[1:]


def extract_issues(message: str) -> List[int]:
    """Issue numbers referenced anywhere in the message, ascending and unique."""
    return sorted({int(number) for number in ISSUE_PATTERN.findall(message or "")})


def extract_pr_number(message: str) -> Optional[int]:
    match = PR_PATTERN.search(message or "")
    return int(match.group(1)) if match else None


def resolve_author(commit: RawCommit) -> str:
    return commit.author.username or commit.author.name


def classify_commit(commit: RawCommit, include_issues: bool = True) -> EnrichedCommit:
    """Enrich one raw commit with its type, breaking flag, issues and PR number.

    Args:
        commit: Raw commit as listed by the hosting API
        include_issues: Whether to extract referenced issue numbers

    Returns:
        A new EnrichedCommit
    """
    return EnrichedCommit(
        sha=commit.sha,
        message=clean_message(commit.message),
        author=resolve_author(commit),
        date=commit.date,
        commit_type=detect_type(commit.message),
        breaking=is_breaking(commit.message),
        pr_number=extract_pr_number(commit.message),
        issues=extract_issues(commit.message) if include_issues else [],
    )


def plain_commit(commit: RawCommit) -> EnrichedCommit:
    """Enrichment used when categorization is off: subject line only."""
    return EnrichedCommit(
        sha=commit.sha,
        message=first_line(commit.message).strip(),
        author=resolve_author(commit),
        date=commit.date,
    )


def analyze_commits(commits: Sequence[RawCommit], include_issues: bool = True) -> List[EnrichedCommit]:
    return [classify_commit(commit, include_issues=include_issues) for commit in commits]


def group_commits_by_type(commits: Sequence[EnrichedCommit]) -> Dict[CommitType, List[EnrichedCommit]]:
    """Partition typed commits by type, keeping their relative order.

    Keys follow ``CommitType`` declaration order; untyped commits are left out.
    """
    grouped: Dict[CommitType, List[EnrichedCommit]] = {}
    for commit_type in CommitType:
        members = [commit for commit in commits if commit.commit_type == commit_type]
        if members:
            grouped[commit_type] = members
    return grouped


def link_pull_requests(commits: Sequence[EnrichedCommit], pull_requests: Sequence[PullRequestRef]) -> List[EnrichedCommit]:
    """Attach PR numbers from an authoritative lookup by merge commit sha.

    A matching pull request overrides the number parsed from the message;
    when several match, the last one wins.
    """
    by_merge_sha: Dict[str, int] = {}
    for pr in pull_requests:
        if pr.merge_commit_sha:
            by_merge_sha[pr.merge_commit_sha] = pr.number
    linked = []
    for commit in commits:
        number = by_merge_sha.get(commit.sha)
        linked.append(commit.with_pr_number(number) if number is not None else commit)
    return linked
