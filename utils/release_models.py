#!/usr/bin/env python3
"""Release aggregation models.

Raw shapes returned by the hosting API client (releases, commits, pull
requests) and the aggregate document built from them. The aggregate models
serialize to the JSON report format, so field names and nesting are fixed.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SerializationInfo, field_serializer, field_validator

from configs.config import Config


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
	if value is None:
		return None
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


class _Model(BaseModel):
	model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Hosting API shapes
# ---------------------------------------------------------------------------

class Release(_Model):
	"""A published release of one repository."""

	tag_name: str
	name: Optional[str] = None
	body: Optional[str] = None
	created_at: datetime
	published_at: Optional[datetime] = None
	id: Optional[int] = None
	draft: bool = False
	prerelease: bool = False
	target_commitish: Optional[str] = None

	_utc = field_validator("created_at", "published_at")(ensure_utc)


class CommitAuthor(_Model):
	name: str
	email: str = ""
	username: Optional[str] = None


class RawCommit(_Model):
	"""A commit as listed by the hosting API, before classification."""

	sha: str
	message: str
	author: CommitAuthor
	date: datetime

	_utc = field_validator("date")(ensure_utc)


class PullRequestRef(_Model):
	number: int
	title: str = ""
	body: Optional[str] = None
	merged_at: Optional[datetime] = None
	merge_commit_sha: Optional[str] = None


# ---------------------------------------------------------------------------
# Aggregate document
# ---------------------------------------------------------------------------

class CommitType(str, Enum):
	"""Classification tag of a commit; serialized by name."""

	FEATURE = "Feature"
	FIX = "Fix"
	DOCUMENTATION = "Documentation"
	PERFORMANCE = "Performance"
	REFACTOR = "Refactor"
	TEST = "Test"
	BUILD = "Build"
	CI = "CI"
	CHORE = "Chore"
	STYLE = "Style"
	OTHER = "Other"

	@property
	def section_title(self) -> str:
		return Config.COMMIT_TYPE_TITLES.get(self.value, self.value)

	def __str__(self) -> str:
		return self.section_title


class EnrichedCommit(_Model):
	"""A commit augmented with classification metadata.

	Frozen: the PR number found by a separate lookup is attached through
	``with_pr_number``, which returns a new value.
	"""

	model_config = ConfigDict(extra="ignore", frozen=True)

	sha: str
	message: str
	author: str
	date: datetime
	commit_type: Optional[CommitType] = None
	breaking: bool = False
	pr_number: Optional[int] = None
	issues: List[int] = Field(default_factory=list)

	_utc = field_validator("date")(ensure_utc)

	@field_validator("issues")
	@classmethod
	def _sorted_unique(cls, value: List[int]) -> List[int]:
		return sorted(set(value))

	@property
	def short_sha(self) -> str:
		return self.sha[:7]

	def with_pr_number(self, pr_number: int) -> "EnrichedCommit":
		return self.model_copy(update={"pr_number": pr_number})


class ReleaseStats(_Model):
	commit_count: int = 0
	contributors: List[str] = Field(default_factory=list)
	breaking_changes: int = 0
	features: int = 0
	fixes: int = 0


class Released(_Model):
	"""Status of a component that has a release for the requested version."""

	KIND: ClassVar[str] = "Released"

	current_version: str
	previous_version: Optional[str] = None
	release_date: datetime
	commits: List[EnrichedCommit] = Field(default_factory=list)
	release_notes: Optional[str] = None
	stats: ReleaseStats = Field(default_factory=ReleaseStats)

	_utc = field_validator("release_date")(ensure_utc)


class NoRelease(_Model):
	"""Status of a component without a release for the requested version."""

	KIND: ClassVar[str] = "NoRelease"

	latest_version: Optional[str] = None
	latest_date: Optional[datetime] = None

	_utc = field_validator("latest_date")(ensure_utc)


ComponentStatus = Union[Released, NoRelease]

_STATUS_TYPES = {Released.KIND: Released, NoRelease.KIND: NoRelease}


class ComponentRelease(_Model):
	"""One requested repository and its status.

	The status is externally tagged in serialized form:
	``{"Released": {...}}`` or ``{"NoRelease": {...}}``.
	"""

	repository: str
	status: ComponentStatus

	@field_validator("status", mode="before")
	@classmethod
	def _unwrap_status(cls, value):
		if not isinstance(value, dict):
			return value
		if len(value) != 1:
			raise ValueError(f"component status must have exactly one tag, got {sorted(value)!r}")
		tag, body = next(iter(value.items()))
		status_type = _STATUS_TYPES.get(tag)
		if status_type is None:
			raise ValueError(f"unknown component status {tag!r}")
		return status_type.model_validate(body)

	@field_serializer("status")
	def _wrap_status(self, status: ComponentStatus, info: SerializationInfo):
		return {status.KIND: status.model_dump(mode=info.mode)}

	@property
	def is_released(self) -> bool:
		return isinstance(self.status, Released)


class ReleaseSummary(_Model):
	total_repos: int = 0
	updated_repos: int = 0
	total_commits: int = 0
	contributors: List[str] = Field(default_factory=list)


class AggregatedRelease(_Model):
	"""Cross-repository release document for one version."""

	version: str
	date: datetime
	components: List[ComponentRelease] = Field(default_factory=list)
	summary: ReleaseSummary = Field(default_factory=ReleaseSummary)

	_utc = field_validator("date")(ensure_utc)

	def to_json(self) -> str:
		return self.model_dump_json(indent=2)


def load_aggregated_release(text: str) -> AggregatedRelease:
	"""Parse a JSON report back into an ``AggregatedRelease``."""
	return AggregatedRelease.model_validate_json(text)
