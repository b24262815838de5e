#!/usr/bin/env python3
"""Release aggregator agent.

Collects the release for one version tag across several repositories of an
organization, enriches the commits each release introduced and renders the
aggregate as Markdown, JSON or HTML.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from clients.github_client import GithubApiError, GithubAuthError, GithubReleaseClient
from clients.release_source import ReleaseDataSource
from configs.config import Config
from utils.changelog_renderer import ChangelogRenderer, ChangelogRenderError
from utils.metrics import Timer, incr
from utils.release_diff import ReleaseDiffEngine
from utils.release_models import AggregatedRelease, ComponentRelease, Release, Released
from utils.release_stats import summarize

# Set up logging
logger = logging.getLogger(__name__)


@dataclass
class AggregatorOptions:
	include_prs: bool = False
	# Rendering only: issues are always extracted from commit messages
	include_issues: bool = False
	categorize_commits: bool = False
	template_path: Optional[str] = None

	@classmethod
	def from_config(cls) -> "AggregatorOptions":
		flags = Config.get_feature_flags()
		return cls(
			include_prs=flags["include_prs"],
			include_issues=flags["include_issues"],
			categorize_commits=flags["categorize_commits"],
			template_path=Config.TEMPLATE_PATH,
		)


class ReleaseAggregator:
	"""Aggregates one version's releases across repositories, one repository at a time."""

	def __init__(self, source: ReleaseDataSource, options: Optional[AggregatorOptions] = None):
		"""Initialize the aggregator.

		Args:
			source: Release data source (GitHub client or a test double)
			options: Feature toggles; defaults come from Config
		"""
		self.source = source
		self.options = options or AggregatorOptions.from_config()
		self.engine = ReleaseDiffEngine(
			source,
			categorize=self.options.categorize_commits,
			include_prs=self.options.include_prs,
		)
		logger.info("Release aggregator initialized")

	def aggregate(self, version: str, repos: Sequence[str]) -> AggregatedRelease:
		"""Build the aggregated release document for ``version``.

		Args:
			version: Release tag shared by the repositories
			repos: Repository names, in report order

		Returns:
			AggregatedRelease with one component per repository and the summary

		Raises:
			Any data source error; the run is aborted rather than skipping a repository
		"""
		logger.info(f"Aggregating release {version} across {len(repos)} repositories")
		components = [self.process_repository(repo, version) for repo in repos]
		summary = summarize(components)
		logger.info(f"✓ Release {version}: {summary.updated_repos}/{summary.total_repos} repositories released, "
				   f"{summary.total_commits} commits, {len(summary.contributors)} contributors")
		return AggregatedRelease(
			version=version,
			date=datetime.now(timezone.utc),
			components=components,
			summary=summary,
		)

	def process_repository(self, repo: str, version: str) -> ComponentRelease:
		try:
			with Timer("aggregate.repository", repo=repo, version=version):
				status = self.engine.resolve(repo, version)
		except Exception as e:
			logger.error(f"Failed to resolve release {version} for {repo}: {e}")
			raise
		incr("aggregate.released" if isinstance(status, Released) else "aggregate.no_release", repo=repo)
		return ComponentRelease(repository=repo, status=status)

	def check_release(self, version: str, repos: Sequence[str]) -> Dict[str, bool]:
		"""Whether each repository has a release for ``version``."""
		return {repo: self.source.get_release(repo, version) is not None for repo in repos}

	def list_recent_releases(self, repos: Sequence[str], limit: int) -> Dict[str, List[Release]]:
		return {repo: self.source.list_releases(repo, limit) for repo in repos}

	def close(self) -> None:
		"""Close the aggregator and its data source."""
		self.source.close()
		logger.info("Release aggregator closed")


def _split_repos(value: str) -> List[str]:
	repos = [item.strip() for item in value.split(",") if item.strip()]
	if not repos:
		raise argparse.ArgumentTypeError("at least one repository is required")
	return repos


def _build_source(args: argparse.Namespace) -> ReleaseDataSource:
	return GithubReleaseClient(token=args.token, org=args.org)


def _print_check(version: str, presence: Dict[str, bool]) -> bool:
	for repo, found in presence.items():
		if found:
			print(f"✓ {repo}: Release {version} found")
		else:
			print(f"✗ {repo}: Release {version} not found")
	return all(presence.values())


def _print_releases(releases_by_repo: Dict[str, List[Release]]) -> None:
	for repo, releases in releases_by_repo.items():
		print(f"Repository: {repo}")
		if not releases:
			print("  No releases found")
		for release in releases:
			published = release.published_at.isoformat() if release.published_at else "unpublished"
			print(f"  - {release.tag_name}: {published}")
		print()


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="release-aggregator",
		description="Aggregate release notes from multiple GitHub repositories",
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  release-aggregator --org acme generate --version v2.0.0 --repos api,web --categorize
  release-aggregator --org acme generate -v v2.0.0 -r api,web -f html -o release.html
  release-aggregator --org acme check --version v2.0.0 --repos api,web
  release-aggregator --org acme list --repos api,web --limit 5
		"""
	)
	parser.add_argument("--token", default=Config.GITHUB_TOKEN, help="GitHub token (defaults to GITHUB_TOKEN)")
	parser.add_argument("--org", default=Config.GITHUB_ORG, help="Organization or user name (defaults to GITHUB_ORG)")
	parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

	sub = parser.add_subparsers(dest="command", required=True)

	gen = sub.add_parser("generate", help="Generate release notes for a specific version")
	gen.add_argument("--version", "-v", required=True, help="Version/tag name to aggregate")
	gen.add_argument("--repos", "-r", type=_split_repos, required=True, help="Comma-separated repository names")
	gen.add_argument("--output", "-o", help="Output file path (stdout if not specified)")
	gen.add_argument("--format", "-f", default=Config.OUTPUT_FORMAT, choices=["markdown", "md", "json", "html"])
	gen.add_argument("--include-prs", action="store_true", default=Config.INCLUDE_PRS, help="Include PR links")
	gen.add_argument("--include-issues", action="store_true", default=Config.INCLUDE_ISSUES, help="Show referenced issues next to each commit")
	gen.add_argument("--categorize", action="store_true", default=Config.CATEGORIZE_COMMITS,
					 help="Categorize commits by type (feat, fix, etc.)")
	gen.add_argument("--template", default=Config.TEMPLATE_PATH, help="Custom Markdown template (Jinja2)")

	chk = sub.add_parser("check", help="Check if all repos have a specific release")
	chk.add_argument("--version", "-v", required=True)
	chk.add_argument("--repos", "-r", type=_split_repos, required=True)

	lst = sub.add_parser("list", help="List recent releases across repositories")
	lst.add_argument("--repos", "-r", type=_split_repos, required=True)
	lst.add_argument("--limit", type=int, default=10, help="Releases per repository (GitHub returns at most 100)")
	return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
	"""CLI entry point for the release aggregator."""
	parser = build_parser()
	args = parser.parse_args(argv)

	# Set up logging
	log_level = logging.DEBUG if args.verbose else logging.INFO
	logging.basicConfig(
		level=log_level,
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
	)
	if not args.verbose:
		logging.getLogger("clients.github_client").setLevel(logging.WARNING)

	aggregator = None
	try:
		if args.command == "generate":
			options = AggregatorOptions(
				include_prs=args.include_prs,
				include_issues=args.include_issues,
				categorize_commits=args.categorize,
				template_path=args.template,
			)
			# Validate rendering inputs before any network call
			renderer = ChangelogRenderer(args.format, options.template_path, include_issues=options.include_issues)
			aggregator = ReleaseAggregator(_build_source(args), options)
			release = aggregator.aggregate(args.version, args.repos)
			content = renderer.render(release)
			if args.output:
				Path(args.output).write_text(content, encoding="utf-8")
				print(f"Release notes written to {args.output}")
			else:
				print(content)
			sys.exit(0)

		aggregator = ReleaseAggregator(_build_source(args))

		if args.command == "check":
			print(f"Checking release {args.version} for repositories: {', '.join(args.repos)}")
			all_present = _print_check(args.version, aggregator.check_release(args.version, args.repos))
			sys.exit(0 if all_present else 1)

		if args.command == "list":
			print(f"Recent releases (limit: {args.limit}):")
			print()
			_print_releases(aggregator.list_recent_releases(args.repos, args.limit))
			sys.exit(0)

	except (GithubAuthError, GithubApiError, ChangelogRenderError) as e:
		print(f"Error: {e}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		sys.exit(1)

	except ValueError as e:
		print(f"Error: {e}", file=sys.stderr)
		sys.exit(1)

	except KeyboardInterrupt:
		print("\nOperation cancelled by user", file=sys.stderr)
		sys.exit(1)

	finally:
		if aggregator:
			aggregator.close()


if __name__ == "__main__":
	main()
