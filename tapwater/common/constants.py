"""Application constants."""

USER_AGENT = "tapwater/0.3 (+drinking-water lookup)"

CENSUS_GEOCODER_URL = "https://geocoding.geo.census.gov/geocoder/locations/onelineaddress"
CENSUS_BENCHMARK = "Public_AR_Current"
# Census benchmark coordinates are NAD83.
CENSUS_RESPONSE_EPSG = 4269
MIN_ADDRESS_LENGTH = 6

WATER_SYSTEM_LAYER_URL = (
    "https://services.arcgis.com/cJ9YHowT8TU7DUyn/arcgis/rest/services/"
    "Water_System_Boundaries/FeatureServer/0"
)
WATER_SYSTEM_OUT_FIELDS = ("PWSID", "PWS_Name", "Primacy_Agency")
WGS84_EPSG = 4326

VIOLATIONS_TABLE = "SDWA_VIOLATIONS_ENFORCEMENT"
LOOKBACK_YEARS = 3
VIOLATION_PAGE_SIZE = 50

EXIT_SUCCESS = 0
EXIT_LOOKUP_FAILED = 10
EXIT_HARD_FAIL = 20

JSON_LOG_FIELDS = (
    "timestamp",
    "request_id",
    "stage",
    "event",
    "status",
    "system_id",
    "candidate_count",
    "duration_ms",
    "error_code",
    "message",
)
