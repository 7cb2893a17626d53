"""Error taxonomy for liberation runs.

Only retrieval and packaging failures abort a run. The other classes exist so
that degraded paths can be logged and reported with a stage tag.
"""


class LiberationError(Exception):
    """Base class; every error carries the pipeline stage it came from."""

    stage = "pipeline"

    def __init__(self, message: str, *, stage: str | None = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class FatalRetrievalError(LiberationError):
    """Source unreachable or unparsable."""

    stage = "retrieval"


class AnalysisError(LiberationError):
    """Programming error on a malformed snapshot; not user-facing."""

    stage = "analysis"


class CleaningServiceError(LiberationError):
    """AI tier unavailable, rate limited or malformed reply."""

    stage = "cleaning"


class PackagingError(LiberationError):
    stage = "packaging"


class LedgerError(LiberationError):
    stage = "ledger"


class RunAbandoned(LiberationError):
    """The caller declined to continue after analysis."""

    stage = "decision"


class ConfigurationError(LiberationError):
    """Unusable settings, reported before any run starts."""

    stage = "config"
