"""Central configuration for the photo album sync client.

Deployment-specific values are read from environment variables with
sensible defaults. Paging and freshness values are tuned for the people
gallery and lightbox; change them together with the tests that pin them.
"""

import os

# =============================================================================
# REMOTE API
# =============================================================================

# Base URL of the photo backend (no trailing slash)
API_BASE_URL = os.getenv(
    "PHOTO_API_URL", "https://image-annotation-tool-api.azurewebsites.net"
).rstrip("/")

# Per-request timeout applied by the HTTP transport, in seconds
HTTP_TIMEOUT_SECONDS = float(os.getenv("PHOTO_API_TIMEOUT", "30"))

# =============================================================================
# LOGGING
# =============================================================================

# Default log level name when no CLI-style override is given
LOG_LEVEL = os.getenv("PHOTO_SYNC_LOG_LEVEL", "info").lower()

# =============================================================================
# PAGINATION
# =============================================================================

# Named people: small first page for fast first paint, larger follow-up pages
PEOPLE_FIRST_PAGE_SIZE = 25
PEOPLE_PAGE_SIZE = 50

# Unnamed face clusters use the same tiering
CLUSTERS_FIRST_PAGE_SIZE = 25
CLUSTERS_PAGE_SIZE = 50

# Photos per cursor page (None = backend default)
PHOTO_PAGE_LIMIT = None

# =============================================================================
# CACHE FRESHNESS (seconds)
# =============================================================================

# Photo detail rarely changes; lightbox neighbors are prefetched into it
PHOTO_DETAIL_STALE_SECONDS = 5 * 60

# Cluster headers in album views
CLUSTER_METADATA_STALE_SECONDS = 5 * 60

# Current user profile
CURRENT_USER_STALE_SECONDS = 5 * 60
