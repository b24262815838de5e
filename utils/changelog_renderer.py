#!/usr/bin/env python3
"""Render an aggregated release as Markdown, JSON or HTML.

Markdown goes through a Jinja2 template (a custom one, else the bundled
``rendering/default.md.j2``) and falls back to a hand-built formatter that
produces the same document when no template is available. HTML is the
Markdown output converted with ``markdown`` and wrapped in a minimal page.
"""
from __future__ import annotations

import html
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import markdown
from jinja2 import DictLoader, Environment, TemplateError, TemplateNotFound
from pydantic_core import PydanticSerializationError

from utils.commit_analyzer import group_commits_by_type
from utils.release_models import AggregatedRelease, ComponentRelease, EnrichedCommit, Released

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "rendering" / "default.md.j2"
DATE_FORMAT = "%Y-%m-%d"

HTML_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Release {title}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Helvetica, Arial, sans-serif; max-width: 900px; margin: 0 auto; padding: 20px; }}
        h1, h2, h3 {{ border-bottom: 1px solid #e1e4e8; padding-bottom: 0.3em; }}
        code {{ background: #f6f8fa; padding: 2px 4px; border-radius: 3px; }}
    </style>
</head>
<body>
{body}
</body>
</html>
"""


class ChangelogRenderError(Exception):
	"""Raised when a report cannot be produced; no partial output is returned."""
	def __init__(self, message: str, code: str = "RENDER") -> None:
		super().__init__(message)
		self.code = code


class OutputFormat(str, Enum):
	MARKDOWN = "markdown"
	JSON = "json"
	HTML = "html"

	@classmethod
	def parse(cls, value: Union[str, "OutputFormat"]) -> "OutputFormat":
		if isinstance(value, OutputFormat):
			return value
		normalized = (value or "").strip().lower()
		if normalized == "md":
			normalized = "markdown"
		try:
			return cls(normalized)
		except ValueError:
			raise ValueError(f"Unknown output format: {value}") from None


def _eq(left: Any, right: Any) -> bool:
	return left == right


def create_template_environment(templates: Optional[Dict[str, str]] = None) -> Environment:
	"""Jinja2 environment over named string templates, with the ``eq`` helper
	available both as a global function and as a test."""
	env = Environment(
		loader=DictLoader(templates if templates is not None else {}),
		autoescape=False,
		trim_blocks=True,
		lstrip_blocks=True,
	)
	env.globals["eq"] = _eq
	env.tests["eq"] = _eq
	return env


# ---------------------------------------------------------------------------
# Template context
# ---------------------------------------------------------------------------

TextEscape = Callable[[str], str]


def _keep(text: str) -> str:
	return text


def escape_html(text: str) -> str:
	"""Neutralize inline HTML in user-provided text before Markdown conversion.

	Only ``&`` and ``<`` are replaced so Markdown syntax such as ``>`` quotes
	keeps working.
	"""
	if not text:
		return text
	for ch, entity in (("&", "&amp;"), ("<", "&lt;")):
		text = text.replace(ch, entity)
	return text


def _commit_context(commit: EnrichedCommit, escape: TextEscape = _keep) -> Dict[str, Any]:
	return {
		"sha": commit.short_sha,
		"message": escape(commit.message),
		"author": escape(commit.author),
		"pr_number": commit.pr_number,
		"issues": list(commit.issues),
		"issue_refs": ", ".join(f"#{number}" for number in commit.issues),
		"breaking": commit.breaking,
	}


def _component_context(component: ComponentRelease, escape: TextEscape = _keep) -> Dict[str, Any]:
	status = component.status
	if isinstance(status, Released):
		grouped = group_commits_by_type(status.commits)
		stats = status.stats.model_dump()
		stats["contributors"] = [escape(name) for name in stats["contributors"]]
		return {
			"repository": component.repository,
			"status": status.KIND,
			"current_version": status.current_version,
			"previous_version": status.previous_version,
			"release_date": status.release_date.strftime(DATE_FORMAT),
			"commits": [_commit_context(c, escape) for c in status.commits],
			"grouped_commits": [
				{
					"type": commit_type.value,
					"title": commit_type.section_title,
					"commits": [_commit_context(c, escape) for c in commits],
				}
				for commit_type, commits in grouped.items()
			],
			"release_notes": escape(status.release_notes) if status.release_notes else None,
			"stats": stats,
		}
	return {
		"repository": component.repository,
		"status": status.KIND,
		"latest_version": status.latest_version,
		"latest_date": status.latest_date.strftime(DATE_FORMAT) if status.latest_date else None,
	}


def build_template_context(
	release: AggregatedRelease,
	*,
	include_issues: bool = False,
	escape: Optional[TextEscape] = None,
) -> Dict[str, Any]:
	"""Flatten an aggregated release into the document templates render.

	Dates become ``YYYY-MM-DD``, shas are shortened to 7 characters and the
	summary carries the contributor count rather than the names. ``escape`` is
	applied to commit messages, authors and release notes.
	"""
	escape = escape or _keep
	return {
		"version": release.version,
		"date": release.date.strftime(DATE_FORMAT),
		"include_issues": include_issues,
		"summary": {
			"total_repos": release.summary.total_repos,
			"updated_repos": release.summary.updated_repos,
			"total_commits": release.summary.total_commits,
			"contributors": len(release.summary.contributors),
		},
		"components": [_component_context(c, escape) for c in release.components],
	}


# ---------------------------------------------------------------------------
# Fallback formatter
# ---------------------------------------------------------------------------

def _commit_line(commit: Dict[str, Any], include_issues: bool = False) -> str:
	issues = f" ({commit['issue_refs']})" if include_issues and commit["issues"] else ""
	return f"- {commit['message']} ([`{commit['sha']}`]){issues}\n"


def render_simple_markdown(context: Dict[str, Any]) -> str:
	"""Template-free Markdown for a template context; matches the default template."""
	out: List[str] = []
	summary = context["summary"]
	include_issues = context.get("include_issues", False)
	out.append(f"# Release {context['version']}\n\n")
	out.append(f"📅 **Date:** {context['date']}\n\n")
	out.append("## 📊 Summary\n\n")
	out.append(f"- **Total Repositories:** {summary['total_repos']}\n")
	out.append(f"- **Updated Repositories:** {summary['updated_repos']}\n")
	out.append(f"- **Total Commits:** {summary['total_commits']}\n")
	out.append(f"- **Contributors:** {summary['contributors']}\n\n")
	out.append("---\n\n")

	for component in context["components"]:
		out.append(f"## {component['repository']}\n\n")
		if component["status"] == Released.KIND:
			out.append(f"**Version:** `{component['current_version']}`  \n")
			if component["previous_version"]:
				out.append(f"**Previous:** `{component['previous_version']}`  \n")
			else:
				out.append("**Previous:** *Initial Release*  \n")
			out.append(f"**Release Date:** {component['release_date']}  \n")
			out.append(f"**Commits:** {component['stats']['commit_count']}  \n\n")

			if component["commits"]:
				out.append("### 🎯 Changes\n\n")
				if component["grouped_commits"]:
					for group in component["grouped_commits"]:
						out.append(f"#### {group['title']}\n")
						out.extend(_commit_line(c, include_issues) for c in group["commits"])
						out.append("\n")
				else:
					out.extend(_commit_line(c, include_issues) for c in component["commits"])
					out.append("\n")

			if component["release_notes"]:
				out.append("### 📝 Release Notes\n\n")
				out.append(component["release_notes"])
				out.append("\n\n")

			contributors = component["stats"]["contributors"]
			if contributors:
				out.append("### 👥 Contributors\n")
				out.extend(f"- @{name}\n" for name in contributors)
				out.append("\n")
		else:
			out.append("*No changes in this release*\n\n")
			if component["latest_version"]:
				out.append(f"Latest version: `{component['latest_version']}`")
				if component["latest_date"]:
					out.append(f" ({component['latest_date']})")
				out.append("\n\n")
		out.append("---\n\n")
	return "".join(out)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class ChangelogRenderer:
	"""Produces the report text for one output format."""

	def __init__(
		self,
		output_format: Union[str, OutputFormat] = OutputFormat.MARKDOWN,
		template_path: Optional[Union[str, Path]] = None,
		*,
		default_template_path: Optional[Path] = DEFAULT_TEMPLATE_PATH,
		include_issues: bool = False,
	):
		"""Set up the template environment.

		Args:
			output_format: markdown, md, json or html
			template_path: Optional custom Markdown template (Jinja2)
			default_template_path: Bundled template; None forces the fallback formatter
			include_issues: Show referenced issue numbers after each commit

		Raises:
			ValueError: On an unknown output format
			ChangelogRenderError: If the custom template is unreadable or invalid
		"""
		self.format = OutputFormat.parse(output_format)
		self.include_issues = include_issues
		self._templates: Dict[str, str] = {}
		self.env = create_template_environment(self._templates)

		if template_path is not None:
			self.register_template("custom", self._read_template(Path(template_path)))
		elif default_template_path is not None and default_template_path.is_file():
			self.register_template("default", self._read_template(default_template_path))
		else:
			logger.debug("No Markdown template available, using the built-in formatter")

	def register_template(self, name: str, source: str) -> None:
		"""Register a named template from a string, validating its syntax."""
		self._templates[name] = source
		try:
			self.env.get_template(name)
		except TemplateError as e:
			del self._templates[name]
			raise ChangelogRenderError(f"Invalid template '{name}': {e}", code="TEMPLATE_SYNTAX") from e

	def has_template(self, name: str) -> bool:
		return name in self._templates

	def render_template(self, name: str, context: Dict[str, Any]) -> str:
		try:
			return self.env.get_template(name).render(**context)
		except TemplateNotFound as e:
			raise ChangelogRenderError(f"Template not found: {name}", code="TEMPLATE_NOT_FOUND") from e
		except TemplateError as e:
			raise ChangelogRenderError(f"Failed to render template '{name}': {e}", code="RENDER") from e

	def render(self, release: AggregatedRelease) -> str:
		if self.format is OutputFormat.JSON:
			return self.render_json(release)
		if self.format is OutputFormat.HTML:
			return self.render_html(release)
		return self.render_markdown(release)

	def render_markdown(self, release: AggregatedRelease, *, escape: Optional[TextEscape] = None) -> str:
		context = build_template_context(release, include_issues=self.include_issues, escape=escape)
		for name in ("custom", "default"):
			if self.has_template(name):
				return self.render_template(name, context)
		return render_simple_markdown(context)

	def render_json(self, release: AggregatedRelease) -> str:
		try:
			return release.to_json()
		except (PydanticSerializationError, ValueError, TypeError) as e:
			raise ChangelogRenderError(f"Failed to serialize release {release.version}: {e}", code="SERIALIZATION") from e

	def render_html(self, release: AggregatedRelease) -> str:
		fragment = markdown.markdown(self.render_markdown(release, escape=escape_html), extensions=["extra"])
		return HTML_PAGE.format(title=html.escape(release.version), body=fragment)

	@staticmethod
	def _read_template(path: Path) -> str:
		try:
			return path.read_text(encoding="utf-8")
		except OSError as e:
			raise ChangelogRenderError(f"Cannot read template {path}: {e}", code="TEMPLATE_NOT_FOUND") from e
