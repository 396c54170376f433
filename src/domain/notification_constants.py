"""Business rules and constants for notification delivery.

All suppression windows, retry limits and collection names are centralized
here so detectors, the queue and the worker agree on them.
"""

from typing import Final

# Collections
LIKES_COLLECTION: Final[str] = "likes"
MESSAGES_COLLECTION: Final[str] = "messages"
EVENTS_COLLECTION: Final[str] = "events"
EVENT_PROFILES_COLLECTION: Final[str] = "event_profiles"
IDEMPOTENCY_COLLECTION: Final[str] = "notifications_log"
APP_STATES_COLLECTION: Final[str] = "app_states"
PUSH_TOKENS_COLLECTION: Final[str] = "push_tokens"
MUTED_MATCHES_COLLECTION: Final[str] = "muted_matches"
NOTIFICATION_ANALYTICS_COLLECTION: Final[str] = "notification_analytics"

# Presence
PRESENCE_TTL_SECONDS: Final[float] = 30.0
"""A presence record older than this is treated as background.

Business rule: presence is a perishable hint. A client that stopped reporting
(crash, network loss) must not suppress pushes forever.
"""

# Content debounce
DEBOUNCE_WINDOW_SECONDS: Final[float] = 10.0
DEBOUNCE_MAX_ENTRIES: Final[int] = 1000
"""Above this many entries, entries older than twice the window are purged."""

# Queue
ENQUEUE_DEDUP_WINDOW_SECONDS: Final[float] = 30.0
"""Jobs with the same aggregation key and subject inside this window are dropped."""

STALENESS_CUTOFF_HOURS: Final[int] = 24
DRAIN_BATCH_SIZE: Final[int] = 10
DRAIN_INTERVAL_SECONDS: Final[float] = 60.0
LEASE_SECONDS: Final[float] = 120.0
"""How long a worker owns a leased job before another worker may reclaim it."""

# Push gateway
PUSH_BATCH_SIZE: Final[int] = 100
PUSH_TIMEOUT_SECONDS: Final[float] = 10.0
MAX_TOKENS_PER_SESSION: Final[int] = 2
EXPO_PUSH_URL: Final[str] = "https://exp.host/--/api/v2/push/send"

ANDROID_CHANNEL_MESSAGES: Final[str] = "messages"
ANDROID_CHANNEL_MATCHES: Final[str] = "matches"
ANDROID_CHANNEL_DEFAULT: Final[str] = "default"

# Payload content
MESSAGE_PREVIEW_CHARS: Final[int] = 80
SENDER_NAME_PLACEHOLDER: Final[str] = "Someone"
MESSAGE_BODY_FALLBACK: Final[str] = "Open to read"
CONTENT_DIGEST_KEY: Final[str] = "contentDigest"
"""Payload data key holding the digest the worker debounces message jobs on."""
MATCH_TITLE: Final[str] = "\U0001f525 You got Hooked!"
MATCH_BODY: Final[str] = "Start chatting!"

# Expiring events
EXPIRATION_LOOKAHEAD_SECONDS: Final[float] = 3600.0
EXPIRATION_BODY: Final[str] = "Go say hi or swap numbers now!"
