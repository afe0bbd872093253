"""Application constants."""

USER_AGENT = "permitbot/1.0 (+open-data; contact: configured-email)"
ADAPTER_FAMILY_NAMES = ("socrata", "arcgis", "carto")
COMMANDS = (
    "refresh",
    "enrich",
    "query",
    "stats",
    "sources",
    "schedule",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
DEFAULT_ROW_CAP = 1000
DEFAULT_NOTES_LENGTH = 500
DEFAULT_LIFECYCLE_STATUS = "issued"
AREA_KEY_LENGTH = 5
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 500
RISK_LOW = "LOW"
RISK_MEDIUM = "MEDIUM"
RISK_HIGH = "HIGH"
RISK_LEVELS = (RISK_LOW, RISK_MEDIUM, RISK_HIGH)
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "event",
    "status",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
