"""
System Constants and Enumerations

Key namespaces, HTTP header names and logging stage identifiers shared by the
cache layer and its HTTP consumers.

Author: System Architect
Date: 2025-12-05
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Cache processing stages attached to log events.

    Format: {PREFIX}.{SEQUENCE}_{DESCRIPTIVE_NAME}
    """

    INITIALIZATION = "0.0_INITIALIZATION"

    # Store adapter
    STORE_CONNECT = "R.1_STORE_CONNECT"
    STORE_OPERATION = "R.2_STORE_OPERATION"

    # CacheManager
    CACHE_LOOKUP = "C.1_CACHE_LOOKUP"
    CACHE_WRITE = "C.2_CACHE_WRITE"
    CACHE_DELETE = "C.3_CACHE_DELETE"
    TAG_INVALIDATION = "C.4_TAG_INVALIDATION"
    LOCK_ACQUIRE = "C.5_LOCK_ACQUIRE"
    CACHE_STATS = "C.6_CACHE_STATS"
    CACHE_FLUSH = "C.7_CACHE_FLUSH"

    # Strategies
    WRITE_THROUGH = "S.1_WRITE_THROUGH"
    WRITE_BEHIND_FLUSH = "S.2_WRITE_BEHIND_FLUSH"
    MULTI_LEVEL = "S.3_MULTI_LEVEL"
    TIMED_EXPIRY = "S.4_TIMED_EXPIRY"

    # Orchestration
    INVALIDATION = "O.1_INVALIDATION"
    WARMUP = "O.2_WARMUP"

    # HTTP layer
    RESPONSE_CACHE = "H.1_RESPONSE_CACHE"
    ADMIN_AUTH = "H.2_ADMIN_AUTH"


class InvalidationType(str, Enum):
    """Scopes accepted by the bulk invalidation entry point."""

    TAG = "tag"
    KEY = "key"
    PATTERN = "pattern"
    ALL = "all"


class WarmupType(str, Enum):
    """Sources accepted by the warmup entry point."""

    PRODUCTS = "products"
    PAGES = "pages"
    CUSTOM = "custom"


# ============================================================================
# Key Namespaces
# ============================================================================

CACHE_KEY_PREFIX = "cache:"
TAG_KEY_PREFIX = "tag:"
LOCK_KEY_PREFIX = "lock:"

# Marker prepended to compressed payloads
COMPRESSION_MARKER = "z1:"

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_CACHE_STATUS = "X-Cache"
HEADER_CACHE_KEY = "X-Cache-Key"

CACHE_STATUS_HIT = "HIT"
CACHE_STATUS_MISS = "MISS"

# Methods whose successful completion triggers tag/key invalidation
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
