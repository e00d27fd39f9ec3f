"""
Centralized configuration: env vars, status values, pipeline settings.
"""
import os
from dataclasses import dataclass


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Database ─────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Scoring pipeline ─────────────────────────────────────────────────────────
SCORING_MAX_RETRIES = int(os.getenv('SCORING_MAX_RETRIES', '3'))
SCORING_RETRY_BASE_WAIT_MS = int(os.getenv('SCORING_RETRY_BASE_WAIT_MS', '2000'))
SCORING_BATCH_SIZE = int(os.getenv('SCORING_BATCH_SIZE', '1000'))
SCORING_WORKER_COUNT = int(os.getenv('SCORING_WORKER_COUNT', '4'))
SCORING_RETRY_CONFIG_ERRORS = os.getenv('SCORING_RETRY_CONFIG_ERRORS', '').lower() in ('1', 'true', 'yes')

# Backoff never exceeds 5 minutes regardless of attempt number
MAX_BACKOFF_MS = 5 * 60 * 1000

DEFAULT_MODEL_VERSION = os.getenv('DEFAULT_MODEL_VERSION', 'site-selection-iq-v1.0')

# ── Idempotency ──────────────────────────────────────────────────────────────
IDEMPOTENCY_TTL_HOURS = int(os.getenv('IDEMPOTENCY_TTL_HOURS', '24'))

RESOURCE_INPUT_SET = 'input_set'
RESOURCE_SCORING_RUN = 'scoring_run'

# ── API ──────────────────────────────────────────────────────────────────────
RESULTS_PAGE_SIZE = 20
RESULTS_MAX_PAGE_SIZE = 100

# ── Run status values ─────────────────────────────────────────────────────────
STATUS_QUEUED = 'queued'
STATUS_RUNNING = 'running'
STATUS_SUCCEEDED = 'succeeded'
STATUS_FAILED = 'failed'

RUN_STATUSES = [
    STATUS_QUEUED,
    STATUS_RUNNING,
    STATUS_SUCCEEDED,
    STATUS_FAILED,
]

TERMINAL_STATUSES = (STATUS_SUCCEEDED, STATUS_FAILED)

# ── Input set validation status values ───────────────────────────────────────
VALIDATION_VALID = 'valid'
VALIDATION_INVALID = 'invalid'


@dataclass(frozen=True)
class PipelineConfig:
    """Settings handed to the scoring pipeline and its dispatcher."""
    max_retries: int = 3
    base_backoff_ms: int = 2000
    max_backoff_ms: int = MAX_BACKOFF_MS
    batch_size: int = 1000
    worker_count: int = 4
    retry_configuration_errors: bool = False

    @classmethod
    def from_env(cls) -> 'PipelineConfig':
        return cls(
            max_retries=SCORING_MAX_RETRIES,
            base_backoff_ms=SCORING_RETRY_BASE_WAIT_MS,
            batch_size=SCORING_BATCH_SIZE,
            worker_count=SCORING_WORKER_COUNT,
            retry_configuration_errors=SCORING_RETRY_CONFIG_ERRORS,
        )
