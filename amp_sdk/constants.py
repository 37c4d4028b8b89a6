# ---------------------------------
# SDK DEFAULTS
# ---------------------------------

DEFAULT_BASE_URL = 'https://amp.kore.ai'

INGEST_ENDPOINT = '/ingestion/api/v1/telemetry'
TRANSCRIPT_ENDPOINT = '/ingestion/api/v1/telemetry?format=transcript'
HEALTH_ENDPOINT = '/api/v1/health'

DEFAULT_BATCH_SIZE = 100
DEFAULT_BATCH_TIMEOUT_MS = 5000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_MS = 500
DEFAULT_TIMEOUT_MS = 30000

API_KEY_HEADER = 'X-API-Key'

SDK_NAME = 'amp-sdk-python'
SDK_VERSION = '1.0.0'
