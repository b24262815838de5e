import os
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
	return bool(int(os.getenv(name, default)))


class Config:
	"""Configuration for the release aggregator."""

	# GitHub REST configuration
	GITHUB_TOKEN = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PAT")
	GITHUB_ORG = os.getenv("GITHUB_ORG", "")
	GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip('/')
	HTTP_TIMEOUT_S = int(os.getenv("HTTP_TIMEOUT_S", "30"))

	# Listing bounds
	RELEASES_PAGE_SIZE = int(os.getenv("RELEASES_PAGE_SIZE", "100"))
	COMMITS_PAGE_SIZE = int(os.getenv("COMMITS_PAGE_SIZE", "100"))
	COMMITS_MAX_PAGES = int(os.getenv("COMMITS_MAX_PAGES", "10"))

	# Output
	OUTPUT_FORMAT = os.getenv("OUTPUT_FORMAT", "markdown")
	TEMPLATE_PATH = os.getenv("TEMPLATE_PATH") or None

	# Feature flags (CLI switches turn these on per run)
	CATEGORIZE_COMMITS = _flag("CATEGORIZE_COMMITS")
	INCLUDE_PRS = _flag("INCLUDE_PRS")
	INCLUDE_ISSUES = _flag("INCLUDE_ISSUES")

	# Observability
	METRICS_ROOT = os.getenv("METRICS_ROOT", ".cache/release_aggregator/metrics")
	METRICS_ENABLED = _flag("METRICS_ENABLED", "1")

	# Section titles per commit type, in rendering order
	COMMIT_TYPE_TITLES = {
		"Feature": "✨ Features",
		"Fix": "🐛 Bug Fixes",
		"Documentation": "📚 Documentation",
		"Performance": "⚡ Performance",
		"Refactor": "♻️ Refactoring",
		"Test": "✅ Tests",
		"Build": "📦 Build System",
		"CI": "👷 CI/CD",
		"Chore": "🔧 Chores",
		"Style": "💄 Style",
		"Other": "📝 Other Changes",
	}

	@classmethod
	def get_github_config(cls) -> Dict[str, Any]:
		"""Get GitHub configuration for the REST client."""
		return {
			"base_url": cls.GITHUB_API_URL,
			"token": cls.GITHUB_TOKEN,
			"org": cls.GITHUB_ORG,
			"timeout_s": cls.HTTP_TIMEOUT_S,
		}

	@classmethod
	def get_pagination_config(cls) -> Dict[str, int]:
		"""Get page sizes and the commit page bound.

		Returns:
			Mapping with releases page size, commits page size and max commit pages.
		"""
		return {
			"releases_per_page": min(cls.RELEASES_PAGE_SIZE, 100),
			"commits_per_page": min(cls.COMMITS_PAGE_SIZE, 100),
			"commits_max_pages": cls.COMMITS_MAX_PAGES,
		}

	@classmethod
	def get_feature_flags(cls) -> Dict[str, bool]:
		return {
			"categorize_commits": cls.CATEGORIZE_COMMITS,
			"include_prs": cls.INCLUDE_PRS,
			"include_issues": cls.INCLUDE_ISSUES,
		}
