"""Internal constants shared across the library."""

DEFAULT_BASE_URL = "http://localhost:8080/api"
USER_AGENT = "studiosync/0.1"

# Browsers cap navigator.sendBeacon payloads at 64 KiB; the backend's
# teardown route is sized for the same limit.
DEFAULT_BEACON_MAX_BYTES = 64 * 1024

#: Endpoints that must never trigger the 401 refresh-and-retry path.
AUTH_ENDPOINTS: frozenset[str] = frozenset({"/auth/refresh", "/auth/login", "/auth/register"})

REFRESH_ENDPOINT = "/auth/refresh"
STORAGE_STATUS_ENDPOINT = "/storage/status"
