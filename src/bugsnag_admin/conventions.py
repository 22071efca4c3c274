"""Bugsnag Admin Conventions

Canonical names, paths, endpoint locations and enumerations that every
part of the admin layer agrees on. These values are NOT configurable.

Things that CAN be configured (via config.yaml / keys.yaml / env):
- Bugsnag API token and organization
- Mattermost URL and access token
- where the plugin API and the mapping store live

Things that CANNOT be configured (defined HERE):
- filenames within ~/.bugsnag-admin/
- KV keys the mappings are persisted under
- the severity and event enumerations used by channel rules
"""

# --- The Root ---
ADMIN_HOME = "~/.bugsnag-admin"

# --- Configuration ---
CONFIG_FILENAME = "config.yaml"
KEYS_FILENAME = "keys.yaml"
STORE_FILENAME = "store.json"
MEMORY_STORE = ":memory:"  # store_path value for a non-persistent KV store
LOG_DIR = "logs"  # relative to ADMIN_HOME
LOG_FILENAME = "admin.log"

# --- Plugin ---
PLUGIN_ID = "com.mattermost.bugsnag"
PLUGIN_API_PREFIX = "/api/v1"
# Full path on the platform: /plugins/com.mattermost.bugsnag/api/v1/...

# --- KV store keys ---
KV_CHANNEL_RULES = "project_channel_mappings"
KV_USER_MAPPINGS = "user_mappings"

# --- Provider (Bugsnag) ---
BUGSNAG_API_URL = "https://api.bugsnag.com"
BUGSNAG_TIMEOUT_SECONDS = 10.0

# --- Platform (Mattermost) ---
PLATFORM_API_PREFIX = "/api/v4"
PLATFORM_PAGE_SIZE = 200

# --- Server ---
SERVER_DEFAULT_HOST = "127.0.0.1"
SERVER_DEFAULT_PORT = 8065

# --- Channel rule enumerations ---
# Order matters: checkbox-driven filters are rebuilt in this order.
SEVERITIES = ("error", "warning", "info")
EVENTS = (
    "exception",
    "error",
    "firstException",
    "reopened",
    "spikeStart",
    "spikeEnd",
)

# --- User-facing messages ---
CONNECTION_SUCCESS_MESSAGE = "Connection successful. Bugsnag credentials look valid."
CONNECTION_FAILURE_MESSAGE = (
    "Connection failed. Please verify the API token and organization ID."
)
SAVE_FAILURE_MESSAGE = "Failed to save"
