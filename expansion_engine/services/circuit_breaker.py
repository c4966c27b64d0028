"""
Redis-backed circuit breakers for the engine's external services.

State for each breaker lives in one Redis hash (cb:<name>):
  state      closed | open
  failures   consecutive failure count
  opened_at  epoch seconds when the circuit last opened
  success / failure / last_error   health counters for /health

An open circuit becomes half-open once reset_timeout has elapsed; the
next call is let through as a probe. If Redis is unreachable the breaker
fails open and lets calls through.
"""
import logging
import time
from functools import wraps

from redis.exceptions import RedisError

from expansion_engine.errors import EngineError

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(EngineError):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is open, service unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('newsapi', redis_client, failure_threshold=5, reset_timeout=120)
        hits = cb.call(provider.fetch, query)
    """

    PREFIX = 'cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    @property
    def key(self):
        return f'{self.PREFIX}:{self.name}'

    def _read(self):
        try:
            return self.redis.hgetall(self.key) or {}
        except RedisError:
            return {}

    def _write(self, **fields):
        try:
            self.redis.hset(self.key, mapping={k: str(v) for k, v in fields.items()})
        except RedisError:
            logger.debug("Circuit '%s' state write skipped, Redis unavailable", self.name)

    def _incr(self, field):
        try:
            return int(self.redis.hincrby(self.key, field, 1))
        except RedisError:
            return 0

    def _seconds_open(self, data):
        opened_at = data.get('opened_at')
        return time.time() - float(opened_at) if opened_at else float('inf')

    @property
    def state(self):
        data = self._read()
        if data.get('state') != OPEN:
            return CLOSED
        if self._seconds_open(data) >= self.reset_timeout:
            return HALF_OPEN
        return OPEN

    @property
    def failure_count(self):
        return int(self._read().get('failures', 0) or 0)

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker; raise CircuitOpenError while open."""
        data = self._read()
        if data.get('state') == OPEN:
            elapsed = self._seconds_open(data)
            if elapsed < self.reset_timeout:
                raise CircuitOpenError(self.name, retry_after=self.reset_timeout - elapsed)
            logger.info("Circuit '%s' half-open, sending probe", self.name)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success(was_open=data.get('state') == OPEN)
        return result

    def protect(self, func):
        """Decorator form of call()."""
        @wraps(func)
        def wrapper(*args, **kwargs):
            return self.call(func, *args, **kwargs)
        return wrapper

    def _on_success(self, was_open=False):
        self._write(state=CLOSED, failures=0)
        self._incr('success')
        if was_open:
            logger.info("Circuit '%s' closed after successful probe", self.name)

    def _on_failure(self, error):
        failures = self._incr('failures')
        self._incr('failure')
        self._write(last_error=str(error)[:200])
        if failures >= self.failure_threshold:
            self._write(state=OPEN, opened_at=time.time())
            logger.warning(
                "Circuit '%s' opened after %d failures (threshold=%d): %s",
                self.name, failures, self.failure_threshold, error,
            )
        else:
            logger.info("Circuit '%s' failure %d/%d: %s",
                        self.name, failures, self.failure_threshold, error)

    def reset(self):
        """Manually close the circuit and clear its counters."""
        try:
            self.redis.delete(self.key)
            logger.info("Circuit '%s' manually reset", self.name)
        except RedisError as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)

    def get_health(self):
        data = self._read()
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': int(data.get('failures', 0) or 0),
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': int(data.get('success', 0) or 0),
            'total_failure': int(data.get('failure', 0) or 0),
            'last_error': data.get('last_error', ''),
        }


# ── Registry ─────────────────────────────────────────────────────────────────

_registry = {}

# name → (failure_threshold, reset_timeout)
BREAKER_SETTINGS = {
    'openai': (5, 60),
    'newsapi': (5, 120),
    'tavily': (5, 120),
}


def get_breaker(name, redis_client=None, **kwargs):
    """Get or create a named circuit breaker (singleton per name)."""
    if name not in _registry:
        if redis_client is None:
            from expansion_engine.extensions import redis_client as rc
            redis_client = rc
        threshold, timeout = BREAKER_SETTINGS.get(name, (3, 300))
        kwargs.setdefault('failure_threshold', threshold)
        kwargs.setdefault('reset_timeout', timeout)
        _registry[name] = CircuitBreaker(name, redis_client, **kwargs)
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """Register a breaker for every external service the engine calls."""
    breakers = {
        name: CircuitBreaker(name, redis_client, failure_threshold=threshold, reset_timeout=timeout)
        for name, (threshold, timeout) in BREAKER_SETTINGS.items()
    }
    _registry.update(breakers)
    return breakers
