"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """Raised when strict output contracts are broken."""

    error_code = "CONTRACT_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that should halt in strict mode."""

    error_code = "STAGE_ERROR"


class SourceError(PipelineError):
    """A failure scoped to a single source; the run carries on without it."""

    error_code = "SOURCE_ERROR"

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class SourceReadError(SourceError):
    """The raw-row reader for one source failed."""

    error_code = "SOURCE_READ_ERROR"


class SourceTimeoutError(SourceReadError):
    error_code = "SOURCE_TIMEOUT"


class CoordinateParseError(SourceError):
    """A coordinate value could not be normalised to WGS84 decimal degrees."""

    error_code = "COORDINATE_PARSE_ERROR"

    def __init__(self, message: str, *, source: str | None = None, raw_value: object = None) -> None:
        super().__init__(message, source=source)
        self.raw_value = raw_value


class SchemaMismatchError(SourceError):
    """A source's raw columns lack a field its mapping expects."""

    error_code = "SCHEMA_MISMATCH"

    def __init__(self, message: str, *, source: str | None = None, missing: list[str] | None = None) -> None:
        super().__init__(message, source=source)
        self.missing = missing or []


class CatalogReadError(PipelineError):
    """The dataset catalog could not be read; nothing to join against."""

    error_code = "CATALOG_READ_ERROR"


class CatalogIntegrityError(CatalogReadError):
    """The dataset catalog holds duplicate dataset identifiers."""

    error_code = "CATALOG_DUPLICATE_KEYS"


class CatalogJoinWarning(UserWarning):
    """A site record's dataset identifier has no catalog entry."""

    def __init__(self, dataset_id: str, *, row_count: int = 1, sources: list[str] | None = None) -> None:
        self.dataset_id = dataset_id
        self.row_count = row_count
        self.sources = sources or []
        super().__init__(f"No catalog entry for dataset identifier {dataset_id} ({row_count} site rows)")
