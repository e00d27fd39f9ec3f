"""
Error taxonomy for schema resolution, scoring and the run pipeline.
"""


class SiteIQError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(SiteIQError):
    """Schema configuration is malformed or incomplete."""


class InvalidArgumentError(SiteIQError, ValueError):
    """A caller broke an operation's contract (empty key, missing schema...)."""


class StoreError(SiteIQError):
    """A persistence operation failed."""


class PartialRecordFailure(SiteIQError):
    """One record could not be parsed or scored. Never fails a whole run."""

    def __init__(self, record_id, reason):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"record '{record_id}' skipped: {reason}")


class RunFailedError(SiteIQError):
    """A run reached its terminal failed state after the retry policy gave up."""

    def __init__(self, run_id, message, attempts):
        self.run_id = run_id
        self.attempts = attempts
        super().__init__(message)


class RunCancelledError(SiteIQError):
    """Retries stopped because the run's cancellation signal fired."""

    def __init__(self, run_id):
        self.run_id = run_id
        super().__init__(f"run {run_id} cancelled while waiting to retry")
