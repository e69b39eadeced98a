"""
Constants and configuration values for bundlehub.

This module contains the hardcoded values, URLs, timeouts, file names and
other constants used throughout the application.
"""

APP_NAME = "bundlehub"

# GitHub / GitLab API endpoints
GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
GITHUB_API_VERSION = "2022-11-28"
GITLAB_API_PATH = "/api/v4"

# Network timeouts (in seconds)
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_PROBE_TIMEOUT = 10.0
DOWNLOAD_TIMEOUT = 120
CLI_TOKEN_TIMEOUT = 5

# Concurrency limits
DEFAULT_MAX_CONCURRENT = 5
DEFAULT_CONNECTOR_LIMIT = 10
MAX_REDIRECTS = 10
REDIRECT_STATUS_CODES = (301, 302, 307, 308)

# HTTP status thresholds
HTTP_STATUS_ERROR_THRESHOLD = 400
HTTP_STATUS_RETRY_THRESHOLD = 500

# Adapter bundle-list memoization
BUNDLE_CACHE_TTL_SECONDS = 5 * 60

# Source identity
SOURCE_ID_HASH_LENGTH = 12
DEFAULT_BRANCH = "main"
LEGACY_DEFAULT_BRANCH = "master"
DEFAULT_COLLECTIONS_PATH = "collections"
HUB_GENERATED_ID_PATTERN = r"^[a-z][a-z-]*-[a-f0-9]{12}$"
FILENAME_MAX_LENGTH = 200

# Source priority bounds
MIN_SOURCE_PRIORITY = 0
MAX_SOURCE_PRIORITY = 100
DEFAULT_SOURCE_PRIORITY = 50

# Bundle files
DEPLOYMENT_MANIFEST_FILE = "deployment-manifest.yml"
HTTP_INDEX_FILE = "index.json"
COLLECTION_FILE_SUFFIX = ".collection.yml"
OLAF_MANIFEST_FILE = "competency-manifest.json"
OLAF_DEFAULT_BASE_PATH = "olaf-core/competencies"
BUNDLE_ARCHIVE_SUFFIX = ".zip"

# Token handling
TOKEN_PREVIEW_LENGTH = 8
GITHUB_SESSION_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
GITLAB_SESSION_ENV_VARS = ("GITLAB_TOKEN",)
GITHUB_CLI_TOKEN_COMMAND = ("gh", "auth", "token")
GITLAB_CLI_TOKEN_COMMAND = ("glab", "config", "get", "token")

# Response parsing
HTML_SNIPPET_MAX_LENGTH = 200

# Storage layout
CONFIG_FILE_NAME = "config.json"
STATE_FILE_NAME = "state.json"
SOURCES_CACHE_DIR = "cache/sources"
INSTALLED_DIR = "installed"
USER_INSTALLED_DIR = "user-installed"
USER_BUNDLES_DIR = "bundles"
WORKSPACE_DIR_NAME = ".bundlehub"
CONFIG_SCHEMA_VERSION = 1

# Migrations
MIGRATION_STATE_KEY = "bundlehub.migrations"
SOURCE_ID_MIGRATION_NAME = "sourceId-normalization-v2"

# Logging configuration
LOGGER_NAME = "bundlehub"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_NAME = "bundlehub.log"
LOG_DIR_NAME = "logs"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_FILE_BACKUP_COUNT = 3

# Environment variable names
LOG_LEVEL_ENV_VAR = "BUNDLEHUB_LOG_LEVEL"
HOME_ENV_VAR = "BUNDLEHUB_HOME"
DISABLE_FILE_LOGGING_ENV_VAR = "BUNDLEHUB_DISABLE_FILE_LOGGING"

# URL prober messages
MSG_URL_ACCESSIBLE = "Accessible"
MSG_URL_PRIVATE = "Private/Access Denied - Expected for private repositories"
MSG_URL_NOT_FOUND = "Not Found - URL is broken"
MSG_URL_INVALID = "Invalid URL format"
MSG_URL_TIMEOUT = "Connection timeout - Unreachable"
MSG_URL_DNS = "DNS lookup failed - Invalid domain"
MSG_URL_REFUSED = "Connection refused - Server not responding"
MSG_URL_RESET = "Connection reset - Server closed connection"
MSG_URL_SSL = "SSL certificate error"
MSG_URL_TOO_MANY_REDIRECTS = "Too many redirects"
