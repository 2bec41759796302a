from __future__ import annotations

from dataclasses import dataclass

JOB_PENDING = "PENDING"
JOB_PROCESSING = "PROCESSING"
JOB_COMPLETED = "COMPLETED"
JOB_FAILED = "FAILED"
ACTIVE_JOB_STATUSES = (JOB_PENDING, JOB_PROCESSING)

LOG_SUCCESS = "SUCCESS"
LOG_FAILURE = "FAILURE"

MODE_MANUAL = "MANUAL"
MODE_SPECIFIC_RSS = "SPECIFIC_RSS"
MODE_NEWS_API_AI = "NEWS_API_AI"
GENERATION_MODES = (MODE_MANUAL, MODE_SPECIFIC_RSS, MODE_NEWS_API_AI)

NEWS_AUTOMATIC = "AUTOMATIC"
NEWS_TAILORED = "TAILORED"


@dataclass(frozen=True)
class QueueJob:
    id: str
    scheduled_at: str
    status: str
    job_params: dict[str, object]
    retry_count: int
    log_message: str | None
    created_at: str
    updated_at: str
    claimed_at: str | None = None
    finished_at: str | None = None


@dataclass(frozen=True)
class ExecutionLogEntry:
    id: str
    queue_job_id: str
    status: str
    result_summary: dict[str, object]
    executed_at: str


@dataclass(frozen=True)
class EditorialStrategy:
    is_active: bool
    articles_per_day: int
    source_weights: dict[str, float]
    image_weights: dict[str, float]
    region_weights: dict[str, float]
    sentiment_weights: dict[str, float]
    complexity_weights: dict[str, float]
    topic_list: list[str]
    updated_at: str | None = None


@dataclass(frozen=True)
class DrawnParameters:
    source_mode: str
    region: str
    sentiment: str
    image_source: str


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str | None
    snippet: str
    published_at: str | None = None


@dataclass(frozen=True)
class NewsResult:
    title: str
    body: str
    url: str | None
    source: str
    image: str | None = None


@dataclass(frozen=True)
class SourceContext:
    text: str
    source_url: str | None = None
    source_image: str | None = None
    headline: str | None = None


@dataclass(frozen=True)
class ImageAsset:
    url: str
    tier: str
    keyword: str | None = None
    storage_path: str | None = None


@dataclass
class HeartbeatOutcome:
    status: str
    job_id: str | None = None
    message: str | None = None
    result: dict[str, object] | None = None
    refilled: int = 0
