from datetime import timedelta

DOMAIN = "vessel_usage"

CONF_POWER = "power"
CONF_TANKAGE = "tankage"
CONF_GROUPS = "groups"
CONF_PATH = "path"
CONF_DIRECTIONALITY = "directionality"
CONF_PERIODS = "periods"
CONF_RANGE = "range"
CONF_AGGREGATION = "aggregation"
CONF_ENABLED = "enabled"
CONF_CAPACITY = "capacity"
CONF_LARGE = "large"
CONF_UNIT = "unit"
CONF_PATHS = "paths"
CONF_GROUP_ID = "id"
CONF_GROUP_TYPE = "type"
CONF_UPDATE_INTERVAL = "update_interval"
CONF_CACHE_RESULTS = "cache_results"
CONF_MAX_CONCURRENCY = "max_concurrency"
CONF_QUERY_TIMEOUT = "query_timeout"
CONF_POWER_ENTITIES = "power_entities"
CONF_TANK_ENTITIES = "tank_entities"

DOMAIN_POWER = "power"
DOMAIN_TANKAGE = "tankage"

DEFAULT_UPDATE_INTERVAL = 60  # Seconds between calculation passes
DEFAULT_CACHE_RESULTS = True
DEFAULT_MAX_CONCURRENCY = 4  # Items computed at once per engine
DEFAULT_QUERY_TIMEOUT = 60  # Seconds allowed per period computation

DEFAULT_POWER_PERIODS = (
    {CONF_RANGE: "1h", CONF_AGGREGATION: "1m"},
    {CONF_RANGE: "24h", CONF_AGGREGATION: "15m"},
    {CONF_RANGE: "7d", CONF_AGGREGATION: "1h"},
)
DEFAULT_TANKAGE_PERIODS = (
    {CONF_RANGE: "24h", CONF_AGGREGATION: "15m"},
    {CONF_RANGE: "7d", CONF_AGGREGATION: "1h"},
)

# Energy flow directions
DIRECTIONALITY_PRODUCER = "producer"
DIRECTIONALITY_CONSUMER = "consumer"
DIRECTIONALITY_BIDIRECTIONAL_NORMAL = "bidirectional-normal"
DIRECTIONALITY_BIDIRECTIONAL_REVERSED = "bidirectional-reversed"
DIRECTIONALITIES = (
    DIRECTIONALITY_PRODUCER,
    DIRECTIONALITY_CONSUMER,
    DIRECTIONALITY_BIDIRECTIONAL_NORMAL,
    DIRECTIONALITY_BIDIRECTIONAL_REVERSED,
)

UNIT_WATTS = "W"
UNIT_RATIO = "ratio"
UNIT_CUBIC_METERS = "m3"
UNIT_UNKNOWN = "unknown"

# Descriptor parsing fallbacks
DEFAULT_AGGREGATION_MINUTES = 60.0
DEFAULT_RANGE_HOURS = 1.0

# Power integration: a pair wider than this many aggregation windows is a gap
GAP_WINDOW_MULTIPLIER = 2
NOISE_LOG_THRESHOLD_WH = 0.1

# Volume conversion
GAL_TO_M3 = 0.00378541
M3_TO_GAL = 264.172

# Tankage change detection
MIN_TIME_BETWEEN_POINTS = timedelta(minutes=2)
ADDITION_MIN_DURATION = timedelta(minutes=5)
SMALL_TANK_ADDITION_GAL = 1.0
LARGE_TANK_ADDITION_GAL = 5.0

# Tankage smoothing; jumps of at least LARGE_REFILL_THRESHOLD_GAL bypass it
SMOOTHING_WINDOW = timedelta(hours=6)
LARGE_REFILL_THRESHOLD_GAL = 10.0

# Fraction of the requested range the aggregated tank series must span
TANKAGE_MIN_COVERAGE_PERCENT = 70.0

SERVICE_QUERY_RANGE = "query_range"
ATTR_PATH = "path"
ATTR_START = "start"
ATTR_END = "end"
ATTR_AGGREGATION = "aggregation"
