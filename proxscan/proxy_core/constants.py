"""
ProxScan Configuration Constants
Centralized constants to replace hardcoded values throughout the codebase
"""

# Port scanning
DEFAULT_PORT = 7890
DEFAULT_SCAN_TIMEOUT_MS = 300

# Proxy validation
DEFAULT_TEST_URL = 'http://httpbin.org/ip'
DEFAULT_TEST_TIMEOUT = 10.0  # seconds
DEFAULT_MAX_CONCURRENT_VALIDATIONS = 200

# Geolocation
DEFAULT_GEO_ENDPOINT = 'http://ip-api.com/json/{ip}?fields=status,message,country,countryCode,city'
DEFAULT_GEO_TIMEOUT = 5.0
DEFAULT_MAX_CONCURRENT_LOOKUPS = 10
DEFAULT_GEO_RATE_LIMIT = 0.75  # ip-api free tier: 45 requests per minute
DEFAULT_GEO_BURST = 5
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_MAX_RETRY_DELAY = 30.0

# Stage hand-off
DEFAULT_QUEUE_SIZE = 200

# Input / output
INPUT_ADDRESS_COLUMN = 'IP Address'
REPORT_COLUMNS = ['Rank', 'IP Address', 'Response Time (ms)', 'Location']
DEFAULT_JSON_INDENT = 2

# Logging configuration
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3

# Third-party loggers to suppress
NOISY_LOGGERS = [
    'aiohttp.access',
    'aiohttp.client',
    'asyncio',
]

DEFAULT_USER_AGENT = 'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
