"""
Centralized configuration — env vars, pipeline constants, version tags.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── OpenAI ────────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
EXPANSION_MODEL = os.getenv('EXPANSION_MODEL', 'gpt-4o')
LLM_TIMEOUT_SECONDS = float(os.getenv('LLM_TIMEOUT_SECONDS', '90'))

# ── External events search ───────────────────────────────────────────────────
EXTERNAL_EVENTS_SEARCH_PROVIDER = os.getenv('EXTERNAL_EVENTS_SEARCH_PROVIDER', 'newsapi')
EXTERNAL_EVENTS_NEWS_API_KEY = os.getenv('EXTERNAL_EVENTS_NEWS_API_KEY')
EXTERNAL_EVENTS_TAVILY_API_KEY = os.getenv('EXTERNAL_EVENTS_TAVILY_API_KEY')
EXTERNAL_EVENTS_MAX_DOMAINS = int(os.getenv('EXTERNAL_EVENTS_MAX_DOMAINS', '50'))

NEWS_API_URL = 'https://newsapi.org/v2/everything'
SEARCH_WINDOW_MONTHS = 6
SEARCH_RESULTS_PER_QUERY = 10

# ── Article fetch ────────────────────────────────────────────────────────────
FETCH_TIMEOUT_SECONDS = 15
FETCH_MAX_BYTES = 2 * 1024 * 1024
FETCH_MAX_CHARS = 15000
FETCH_MIN_CHARS = 100
FETCH_RETRIES = 2
FETCH_BACKOFF_SECONDS = 1.0
FETCH_USER_AGENT = 'ExpansionSignalBot/1.0 (external events enrichment; no LinkedIn)'
MAX_ARTICLES_PER_DOMAIN = 20

# ── Event extraction + dedupe ────────────────────────────────────────────────
EVENT_CONFIDENCE_THRESHOLD = 0.6
DEDUPE_WINDOW_DAYS = 3
DEFAULT_EVENT_PROMPT_ID = 'events/ExpansionEventsV2'
DEFAULT_EVALUATION_PROMPT_ID = 'evaluation/ExpansionEvaluationV2'
DEFAULT_PROMPT_VERSION = 'v1'

# ── Version tags ─────────────────────────────────────────────────────────────
SIGNAL_VERSION = 'v1.0'
LIFT_STATS_VERSION = 'v1.0'
ENGINE_VERSION = 'v1.0'

# ── Export ───────────────────────────────────────────────────────────────────
LINKEDIN_REVIEW_MIN_ARR = 50000
LINKEDIN_REVIEW_MIN_SCORE = 70
EXEC_EVENT_LOOKBACK_MONTHS = 12

# ── Run log API ──────────────────────────────────────────────────────────────
RUN_LOG_MAX_LIMIT = 500

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Background jobs ──────────────────────────────────────────────────────────
RUN_JOB_TIMEOUT = int(os.getenv('RUN_JOB_TIMEOUT', '14400'))
ENRICH_JOB_TIMEOUT = int(os.getenv('ENRICH_JOB_TIMEOUT', '1800'))
