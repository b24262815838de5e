#!/usr/bin/env python3
"""GitHub REST API client for release aggregation.

Implements ``ReleaseDataSource`` on top of the GitHub REST API: release
lookups by tag, release listings, commit listings per ref and pull request
search by commit sha. Missing releases are reported as None; every other
failure raises ``GithubApiError`` or ``GithubAuthError`` with a typed code.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from clients.release_source import ReleaseDataSource
from configs.config import Config
from utils.release_diff import find_previous_release, subtract_commits
from utils.release_models import CommitAuthor, PullRequestRef, RawCommit, Release

# Set up logging
logger = logging.getLogger(__name__)

# GitHub REST page size limit
MAX_PER_PAGE = 100


class GithubAuthError(Exception):
    """Raised when GitHub API authentication fails."""
    def __init__(self, message: str, code: str = "UNAUTHORIZED") -> None:
        super().__init__(message)
        self.code = code


class GithubApiError(Exception):
    """Raised when GitHub API operations fail with a typed code."""
    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


class GithubReleaseClient(ReleaseDataSource):
    """Release, commit and pull request lookups for one GitHub organization."""

    def __init__(
        self,
        token: Optional[str] = None,
        org: Optional[str] = None,
        timeout_s: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub Personal Access Token (defaults to Config.GITHUB_TOKEN)
            org: Organization or user owning the repositories (defaults to Config.GITHUB_ORG)
            timeout_s: Request timeout in seconds (defaults to Config.HTTP_TIMEOUT_S)
            session: Optional pre-built requests session

        Raises:
            GithubAuthError: If no token is available
        """
        github_config = Config.get_github_config()
        self.token = token or github_config["token"]
        self.org = org or github_config["org"]
        self.timeout_s = timeout_s or github_config["timeout_s"]
        self.base_url = github_config["base_url"]

        pagination = Config.get_pagination_config()
        self.releases_per_page = pagination["releases_per_page"]
        self.commits_per_page = pagination["commits_per_page"]
        self.commits_max_pages = pagination["commits_max_pages"]

        if not self.token:
            raise GithubAuthError("GitHub token is required (GITHUB_TOKEN or GITHUB_PAT env var)")

        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'token {self.token}',
            'Accept': 'application/vnd.github+json',
            'User-Agent': 'release-aggregator/1.0'
        })

        logger.info(f"GitHub client initialized for {self.org or '<no org>'}")

    # -------- Releases --------
    def get_release(self, repo: str, tag: str) -> Optional[Release]:
        url = f"{self._repo_url(repo)}/releases/tags/{quote(tag, safe='')}"
        logger.info(f"Fetching release {tag}: {self._full_name(repo)}")
        data = self._get_json(url, what=f"release {tag} of {self._full_name(repo)}", allow_missing=True)
        return self._to_release(data) if data is not None else None

    def get_latest_release(self, repo: str) -> Optional[Release]:
        url = f"{self._repo_url(repo)}/releases/latest"
        data = self._get_json(url, what=f"latest release of {self._full_name(repo)}", allow_missing=True)
        return self._to_release(data) if data is not None else None

    def list_releases(self, repo: str, limit: int) -> List[Release]:
        url = f"{self._repo_url(repo)}/releases"
        if limit > MAX_PER_PAGE:
            logger.warning(f"Release listing for {self._full_name(repo)} is capped at {MAX_PER_PAGE} "
                           f"releases ({limit} requested)")
        params = {'per_page': max(1, min(limit, MAX_PER_PAGE))}
        data = self._get_json(url, params=params, what=f"releases of {self._full_name(repo)}") or []
        releases = [self._to_release(item) for item in data]
        logger.debug(f"✓ Retrieved {len(releases)} releases for {self._full_name(repo)}")
        return releases[:limit]

    def get_previous_release(self, repo: str, current_release: Release) -> Optional[Release]:
        releases = self.list_releases(repo, self.releases_per_page)
        return find_previous_release(releases, current_release)

    # -------- Commits --------
    def get_commits_between(self, repo: str, from_tag: str, to_tag: str) -> List[RawCommit]:
        to_commits = self._list_commits(repo, to_tag)
        from_commits = self._list_commits(repo, from_tag)
        commits = subtract_commits(to_commits, from_commits)
        logger.debug(f"✓ {len(commits)} commits between {from_tag} and {to_tag} in {self._full_name(repo)}")
        return commits

    def get_all_commits_until(self, repo: str, tag: str) -> List[RawCommit]:
        return self._list_commits(repo, tag)

    def _list_commits(self, repo: str, ref: str) -> List[RawCommit]:
        """List commits reachable from ``ref``, newest first, bounded by COMMITS_MAX_PAGES."""
        url = f"{self._repo_url(repo)}/commits"
        all_commits: List[RawCommit] = []
        page = 1
        while True:
            params = {'sha': ref, 'per_page': self.commits_per_page, 'page': page}
            page_items = self._get_json(url, params=params, what=f"commits of {self._full_name(repo)}@{ref}") or []
            all_commits.extend(self._to_commit(item) for item in page_items)
            if len(page_items) < self.commits_per_page:
                break
            if page >= self.commits_max_pages:
                logger.warning(f"{self._full_name(repo)}@{ref} has more than {len(all_commits)} commits, "
                               f"history truncated at {self.commits_max_pages} pages")
                break
            page += 1
        return all_commits

    # -------- Pull requests --------
    def get_pull_requests_for_commits(self, repo: str, shas: Sequence[str]) -> List[PullRequestRef]:
        """Find pull requests associated with commits, one search per short sha.

        A failed search for one commit is logged and skipped.
        """
        pull_requests: List[PullRequestRef] = []
        for sha in shas:
            query = f"repo:{self._full_name(repo)} sha:{sha[:7]}"
            try:
                results = self._get_json(f"{self.base_url}/search/issues", params={'q': query},
                                         what=f"pull requests for {sha[:7]}") or {}
                for item in results.get("items", []):
                    if "pull_request" not in item:
                        continue
                    pr_data = self._get_json(f"{self._repo_url(repo)}/pulls/{item['number']}",
                                             what=f"pull request #{item['number']}")
                    pull_requests.append(self._to_pull_request(pr_data))
            except GithubApiError as e:
                logger.warning(f"Pull request lookup failed for {sha[:7]} in {self._full_name(repo)}: {e}")
        return pull_requests

    # -------- HTTP helpers --------
    def _get_json(self, url: str, *, params: Optional[Dict[str, Any]] = None, what: str = "resource",
                  allow_missing: bool = False) -> Any:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout_s)
        except requests.Timeout as e:
            raise GithubApiError(f"Timeout while fetching {what}: {e}", code="TIMEOUT") from e
        except requests.RequestException as e:
            raise GithubApiError(f"Failed to fetch {what}: {e}", code="NETWORK") from e

        status = response.status_code
        if status == 404:
            if allow_missing:
                return None
            raise GithubApiError(f"{what} not found", code="NOT_FOUND")
        if status == 401:
            raise GithubAuthError("Invalid GitHub token or insufficient permissions")
        if status == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                raise GithubApiError(f"Rate limit exceeded while fetching {what}", code="RATE_LIMIT")
            raise GithubAuthError(f"Access denied while fetching {what}")
        if status == 429:
            raise GithubApiError(f"Rate limit exceeded while fetching {what}", code="RATE_LIMIT")
        if status >= 500:
            raise GithubApiError(f"GitHub API error: HTTP {status} while fetching {what}", code="NETWORK")
        if status != 200:
            raise GithubApiError(f"GitHub API error: HTTP {status} while fetching {what}")
        return response.json()

    def _full_name(self, repo: str) -> str:
        return repo if "/" in repo else f"{self.org}/{repo}"

    def _repo_url(self, repo: str) -> str:
        return f"{self.base_url}/repos/{self._full_name(repo)}"

    # -------- Normalization --------
    @staticmethod
    def _to_release(data: Dict[str, Any]) -> Release:
        return Release(
            id=data.get("id"),
            tag_name=data.get("tag_name", ""),
            name=data.get("name"),
            body=data.get("body"),
            created_at=data.get("created_at"),
            published_at=data.get("published_at"),
            draft=bool(data.get("draft", False)),
            prerelease=bool(data.get("prerelease", False)),
            target_commitish=data.get("target_commitish"),
        )

    @staticmethod
    def _to_commit(data: Dict[str, Any]) -> RawCommit:
        commit_info = data.get("commit") or {}
        git_author = commit_info.get("author") or {}
        # GitHub account is absent for authors whose email maps to no user
        account = data.get("author") or {}
        return RawCommit(
            sha=data.get("sha", ""),
            message=commit_info.get("message", ""),
            author=CommitAuthor(
                name=git_author.get("name") or account.get("login") or "Unknown",
                email=git_author.get("email") or "",
                username=account.get("login"),
            ),
            date=git_author.get("date") or datetime.now(timezone.utc),
        )

    @staticmethod
    def _to_pull_request(data: Dict[str, Any]) -> PullRequestRef:
        return PullRequestRef(
            number=data.get("number", 0),
            title=data.get("title") or "",
            body=data.get("body"),
            merged_at=data.get("merged_at"),
            merge_commit_sha=data.get("merge_commit_sha"),
        )

    def close(self) -> None:
        """Close the GitHub client session."""
        if self.session:
            self.session.close()
            logger.debug("GitHub client session closed")
