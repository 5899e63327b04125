"""Application constants."""

USER_AGENT = "sitelayer/0.4 (+freshwater-monitoring-catalogue; contact: configured-email)"
COMMANDS = (
    "build",
    "list-sources",
    "check-config",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
WGS84_EPSG = 4326
DEFAULT_WORKERS = 8
MAX_WORKERS = 32
DEFAULT_SOURCE_TIMEOUT_SECONDS = 300.0
DATASET_ID_KEY = "dataset_unique_identifier"
CANONICAL_FIELDS = (
    "site_uid",
    "site_name",
    "latitude",
    "longitude",
    DATASET_ID_KEY,
)
READER_KINDS = (
    "csv",
    "remote_csv",
    "ckan_resource",
    "datastream_locations",
    "shapefile",
    "xlsx",
    "text_metadata",
)
COORDINATE_ENCODINGS = ("decimal", "dms", "utm", "projected")
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
