"""Circuit breaker utilities for external service dependencies.

This module wraps **pybreaker** so that a Kubernetes API which keeps failing
makes the reconciler fail fast instead of stacking slow calls inside the
visibility window of every message. An open circuit surfaces as
`UpstreamError`, which the reconciliation loop treats like any other
retryable failure: the message is not acknowledged and is redelivered later.

## Circuit Breaker States

- **CLOSED**: Normal operation, requests pass through
- **OPEN**: Service is failing, requests fail immediately without calling service
- **HALF_OPEN**: Testing if service has recovered, allows limited requests

## Usage

```python
@attrs.define(frozen=False, slots=True)
class MyClient(CircuitBreakerMixin):
    def _circuit_breaker_config(self) -> tuple[str, int, int]:
        return ("myservice", 5, 30)

    @with_circuit_breaker("myservice")
    def fetch(self) -> dict:
        ...
```
"""

import functools
import logging
from collections.abc import Callable, Iterable
from typing import NoReturn

import pybreaker

from reconciler.foundation.exceptions import UpstreamError

logger = logging.getLogger("reconciler.circuit_breaker")


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Logging listener for circuit breaker state changes and call results."""

    def state_change(
        self,
        cb: pybreaker.CircuitBreaker,
        old_state: pybreaker.CircuitBreakerState | None,
        new_state: pybreaker.CircuitBreakerState,
    ) -> None:
        """Log circuit breaker state transitions."""
        logger.warning(
            "Circuit breaker state changed",
            extra={
                "circuit_breaker": cb.name,
                "old_state": str(old_state),
                "new_state": str(new_state),
                "failure_count": cb.fail_counter,
            },
        )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        """Log when a protected call fails."""
        logger.error(
            "Circuit breaker failure",
            extra={
                "circuit_breaker": cb.name,
                "state": str(cb.current_state),
                "failure_count": cb.fail_counter,
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            },
        )

    def success(self, cb: pybreaker.CircuitBreaker) -> None:
        logger.debug(
            "Circuit breaker success",
            extra={"circuit_breaker": cb.name, "state": str(cb.current_state)},
        )


def create_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: int = 60,
    exclude: Iterable[type[BaseException]] | None = None,
) -> pybreaker.CircuitBreaker:
    """Create a circuit breaker for an external service dependency.

    Args:
        name: Unique name for the circuit breaker (e.g., "kubernetes").
        failure_threshold: Number of consecutive failures before opening
            the circuit. Default: 5.
        recovery_timeout: Seconds to wait before attempting recovery (moving to
            half-open state). Default: 60.
        exclude: Exception types that are expected outcomes rather than
            service failures (e.g. not-found on delete). They propagate to the
            caller without counting toward the failure threshold.

    Returns:
        Configured CircuitBreaker instance with logging listener.
    """
    return pybreaker.CircuitBreaker(
        name=name,
        fail_max=failure_threshold,
        reset_timeout=recovery_timeout,
        exclude=list(exclude or ()),
        listeners=[CircuitBreakerListener()],
    )


def handle_circuit_breaker_error(service_name: str) -> NoReturn:
    """Raise UpstreamError for an open circuit.

    Args:
        service_name: Name of the service (for error message).

    Raises:
        UpstreamError: Always.
    """
    msg = (
        f"{service_name} service is currently unavailable. "
        "The circuit breaker is open due to repeated failures. "
        "The service will be retried automatically after the recovery timeout."
    )
    raise UpstreamError(msg)


def _get_breaker_or_raise(instance: object) -> pybreaker.CircuitBreaker:
    breaker = getattr(instance, "_breaker", None)
    if breaker is None:
        msg = (
            f"{instance.__class__.__name__} has no circuit breaker. "
            "Ensure the class inherits from CircuitBreakerMixin and "
            "calls _init_circuit_breaker() in __attrs_post_init__."
        )
        raise RuntimeError(msg)
    return breaker


def with_circuit_breaker(service_name: str) -> Callable:
    """Decorator to wrap method calls with circuit breaker protection.

    The decorator:
    1. Checks if the circuit breaker is open (fail fast)
    2. Wraps the method call with the circuit breaker
    3. Converts CircuitBreakerError into UpstreamError

    Args:
        service_name: Service name for error messages.

    Returns:
        Decorator function that wraps methods with circuit breaker logic.

    Note:
        This decorator expects the instance to have a `_breaker` attribute
        (typically provided by CircuitBreakerMixin).
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            breaker = _get_breaker_or_raise(self)

            if breaker.current_state == pybreaker.STATE_OPEN:
                handle_circuit_breaker_error(service_name)

            def _impl():
                return func(self, *args, **kwargs)

            try:
                return breaker.call(_impl)
            except pybreaker.CircuitBreakerError:
                handle_circuit_breaker_error(service_name)

        return wrapper

    return decorator
