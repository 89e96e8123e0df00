"""
Constants and default tunables for the HN timeline.
"""

# Remote Item Store
HN_API_BASE = "https://hacker-news.firebaseio.com/v0"
HN_USER_AGENT = "hn-timeline/0.1"
HN_HTTP_TIMEOUT = 15.0
HN_HTTP_CONNECT_TIMEOUT = 10.0
ERROR_BODY_MAX_CHARS = 180

# Fetch Concurrency
DEFAULT_FETCH_CONCURRENCY = 8
TOP_STORIES_FETCH_CONCURRENCY = 10
ROOT_HYDRATION_CONCURRENCY = 4

# Snapshot Cache
FEED_STORAGE_KEY = "hn_timeline_feed_snapshot_v1"
DEFAULT_STORY_LIMIT = 10
SNAPSHOT_TTL_MS = 120_000  # 2 minutes
FULL_SNAPSHOT_TTL_MS = 60_000  # 1 minute, 0 = force refresh
MAX_PERSISTED_STORIES = 10
MAX_PERSISTED_COMMENTS = 120

# Comment Traversal
FEED_PRIME_STORY_LIMIT = 3
FEED_BATCH_SIZE = 10
FEED_CONCURRENCY = 6
THREAD_BATCH_SIZE = 20
THREAD_CONCURRENCY = 8
MAX_COMMENTS_PER_STORY = 5

# Ancestor Resolution
ANCESTOR_MAX_HOPS = 40
STORY_THREAD_MAX_COMMENTS = 160
CONTEXT_THREAD_MAX_COMMENTS = 220

# Mixer
DEFAULT_STORY_RATIO = 0.6
LCG_MODULUS = 2147483647
LCG_MULTIPLIER = 16807

# Prefetch Budgets
MAX_STORY_ROUTE_PREFETCHES = 4
MAX_COMMENT_ROUTE_PREFETCHES = 8
PREFETCH_STORY_BATCH_SIZE = 10

# Story Previews
PREVIEW_KEY_PREFIX = "hn_story_preview_v1:"
PREVIEW_READER_BASE = "https://r.jina.ai/http://"
PREVIEW_LOGO_BASE = "https://logo.clearbit.com/"
PREVIEW_MIN_PARAGRAPH_LENGTH = 40
PREVIEW_HTTP_TIMEOUT = 10.0

# Local Storage
CACHE_DIR = ".cache/timeline"
STORAGE_MAX_FILES = 5000  # LRU eviction threshold
