"""Mixins for client wrapper classes.

This module provides reusable mixins that add circuit breaker support and
logging to client classes.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import attrs
import pybreaker

from reconciler.foundation.circuit_breaker import create_circuit_breaker


@attrs.define(frozen=False, slots=True)
class CircuitBreakerMixin(ABC):
    """Mixin for clients with circuit breaker support.

    Subclasses implement `_circuit_breaker_config()` and call
    `_init_circuit_breaker()` from `__attrs_post_init__`.
    """

    _breaker: pybreaker.CircuitBreaker = attrs.field(init=False)

    @abstractmethod
    def _circuit_breaker_config(self) -> tuple[str, int, int]:
        """Return circuit breaker configuration.

        Returns:
            Tuple of (name, failure_threshold, recovery_timeout).
        """

    def _circuit_breaker_exclusions(self) -> Iterable[type[BaseException]]:
        """Exception types that must not count as service failures."""
        return ()

    def _init_circuit_breaker(self) -> None:
        """Initialize circuit breaker with configuration from subclass."""
        name, failure_threshold, recovery_timeout = self._circuit_breaker_config()
        object.__setattr__(
            self,
            "_breaker",
            create_circuit_breaker(
                name=name,
                failure_threshold=failure_threshold,
                recovery_timeout=recovery_timeout,
                exclude=self._circuit_breaker_exclusions(),
            ),
        )


class LoggerMixin:
    """Mixin that provides automatic logger creation for client classes.

    The logger is named after the class's module and is available as
    `self._logger` or `cls._logger`.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._logger = logging.getLogger(cls.__module__)  # type: ignore[attr-defined]
