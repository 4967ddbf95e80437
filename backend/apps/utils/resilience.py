# apps/utils/resilience.py
import logging
from functools import wraps
from django.core.cache import cache

logger = logging.getLogger(__name__)


class CircuitBreakerOpenException(Exception):
    pass


class CircuitBreaker:
    """
    Prevents cascading failures by stopping requests to a failing service.
    """
    def __init__(self, service_name, failure_threshold=5, recovery_timeout=60):
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.key_failures = f"cb:fails:{service_name}"
        self.key_open = f"cb:open:{service_name}"

    def __call__(self, func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            # 1. Check Circuit State (Fail Open if cache error)
            try:
                if cache.get(self.key_open):
                    logger.warning(f"Circuit OPEN: {self.service_name}. Fast failing.")
                    raise CircuitBreakerOpenException(f"{self.service_name} is temporarily down")
            except CircuitBreakerOpenException:
                raise
            except Exception as e:
                logger.error(f"CircuitBreaker cache check failed: {e}")

            # 2. Attempt Execution
            try:
                result = func(*args, **kwargs)
            except Exception:
                # 3. Record Failure
                self._safe_record_failure()
                raise

            self._safe_reset()
            return result

        return wrapper

    def _safe_record_failure(self):
        try:
            # add() is a no-op when the key exists, so the window starts on the first failure
            cache.add(self.key_failures, 0, timeout=self.recovery_timeout)
            fails = cache.incr(self.key_failures)

            # Trip Circuit
            if fails >= self.failure_threshold:
                logger.critical(f"Circuit TRIPPED for {self.service_name}!")
                cache.set(self.key_open, "OPEN", timeout=self.recovery_timeout)
                cache.delete(self.key_failures)
        except Exception as e:
            logger.error(f"CircuitBreaker failure bookkeeping failed for {self.service_name}: {e}")

    def _safe_reset(self):
        try:
            cache.delete(self.key_failures)
        except Exception as e:
            logger.error(f"CircuitBreaker reset failed for {self.service_name}: {e}")


class SideEffectResult:
    """
    Outcome of a best-effort side effect (notification, websocket publish).
    Callers may inspect it; it is never raised.
    """
    def __init__(self, name, ok, value=None, error=None):
        self.name = name
        self.ok = ok
        self.value = value
        self.error = error

    def __bool__(self):
        return self.ok

    def __repr__(self):
        state = "ok" if self.ok else f"failed: {self.error}"
        return f"<SideEffectResult {self.name} {state}>"


def best_effort(name, func, *args, **kwargs):
    """
    Runs a secondary side effect whose failure must never fail or roll back
    the primary operation. Failures are logged and returned, not propagated.
    """
    try:
        return SideEffectResult(name, True, value=func(*args, **kwargs))
    except Exception as e:
        logger.error(f"Side effect '{name}' failed: {e}", exc_info=True)
        return SideEffectResult(name, False, error=str(e))
