"""
Shared client instances — Redis, OpenAI.

Importing this module is always safe, even when env vars are missing
during tests: Redis connects lazily and OpenAI is only built with a key.
"""
import logging
import redis

from expansion_engine.config import REDIS_URL, OPENAI_API_KEY, LLM_TIMEOUT_SECONDS

logger = logging.getLogger('expansion_engine.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# ── OpenAI ────────────────────────────────────────────────────────────────────
openai_client = None
if OPENAI_API_KEY:
    try:
        from openai import OpenAI
        openai_client = OpenAI(api_key=OPENAI_API_KEY, timeout=LLM_TIMEOUT_SECONDS, max_retries=2)
        logger.info("OpenAI client initialized successfully")
    except Exception as e:
        logger.error("Error initializing OpenAI client: %s", e)
else:
    logger.warning("OPENAI_API_KEY not set — event extraction and scoring are unavailable")
