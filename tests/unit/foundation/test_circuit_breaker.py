"""Unit tests for foundation.circuit_breaker module.

This file tests the circuit breaker utilities which provide fault tolerance
for Kubernetes API calls using the pybreaker library.

# Test Coverage

The tests cover:
  - CircuitBreakerListener: state change, success and failure logging
  - create_circuit_breaker: configuration, listener, excluded exceptions
  - with_circuit_breaker: pass-through, failure tracking, fail fast when open
  - handle_circuit_breaker_error and _get_breaker_or_raise

# Running Tests

Run with: pytest tests/unit/foundation/test_circuit_breaker.py
"""

from unittest.mock import MagicMock, patch

import pybreaker
import pytest

from reconciler.foundation.circuit_breaker import (
    CircuitBreakerListener,
    _get_breaker_or_raise,
    create_circuit_breaker,
    handle_circuit_breaker_error,
    with_circuit_breaker,
)
from reconciler.foundation.exceptions import UpstreamError


class _ExpectedMiss(Exception):
    pass


# =============================================================================
# CircuitBreakerListener Tests
# =============================================================================


class TestCircuitBreakerListener:
    """Test suite for CircuitBreakerListener class."""

    @patch("reconciler.foundation.circuit_breaker.logger")
    def test_state_change_logs_transition(self, mock_logger: MagicMock) -> None:
        breaker = MagicMock(spec=pybreaker.CircuitBreaker)
        breaker.name = "kubernetes"
        breaker.fail_counter = 5

        CircuitBreakerListener().state_change(breaker, "closed", "open")

        mock_logger.warning.assert_called_once()
        extra = mock_logger.warning.call_args.kwargs["extra"]
        assert extra["circuit_breaker"] == "kubernetes"
        assert extra["old_state"] == "closed"
        assert extra["new_state"] == "open"
        assert extra["failure_count"] == 5

    @patch("reconciler.foundation.circuit_breaker.logger")
    def test_failure_logs(self, mock_logger: MagicMock) -> None:
        breaker = MagicMock(spec=pybreaker.CircuitBreaker)
        breaker.name = "kubernetes"

        CircuitBreakerListener().failure(breaker, ConnectionError("refused"))

        extra = mock_logger.error.call_args.kwargs["extra"]
        assert extra["exception_type"] == "ConnectionError"
        assert extra["exception_message"] == "refused"

    @patch("reconciler.foundation.circuit_breaker.logger")
    def test_success_logs_at_debug(self, mock_logger: MagicMock) -> None:
        breaker = MagicMock(spec=pybreaker.CircuitBreaker)
        breaker.name = "kubernetes"

        CircuitBreakerListener().success(breaker)

        mock_logger.debug.assert_called_once()


# =============================================================================
# create_circuit_breaker Tests
# =============================================================================


class TestCreateCircuitBreaker:
    """Test suite for create_circuit_breaker."""

    def test_creates_circuit_breaker_with_defaults(self) -> None:
        breaker = create_circuit_breaker("kubernetes")

        assert breaker.name == "kubernetes"
        assert breaker.fail_max == 5
        assert breaker.reset_timeout == 60

    def test_has_listener_attached(self) -> None:
        breaker = create_circuit_breaker("kubernetes", failure_threshold=2, recovery_timeout=10)

        assert breaker.fail_max == 2
        assert breaker.reset_timeout == 10
        assert any(isinstance(listener, CircuitBreakerListener) for listener in breaker.listeners)

    def test_circuit_breaker_opens_after_failures(self) -> None:
        """Test that the circuit opens once the threshold is reached.

        **Why this test is important:**
          - An unhealthy API server must not be hit on every message

        **What it tests:**
          - The tripping call raises CircuitBreakerError
          - The breaker state is open afterwards
        """
        breaker = create_circuit_breaker("test_service", failure_threshold=2)

        def failing_func() -> str:
            raise ConnectionError("connection failed")

        with pytest.raises(ConnectionError):
            breaker.call(failing_func)
        with pytest.raises(pybreaker.CircuitBreakerError):
            breaker.call(failing_func)

        assert breaker.current_state == pybreaker.STATE_OPEN

    def test_excluded_exceptions_do_not_count(self) -> None:
        """Test that excluded exceptions never open the circuit.

        **Why this test is important:**
          - Not-found answers on delete are expected during redelivery
          - Counting them would open the circuit on a healthy API server

        **What it tests:**
          - The excluded exception propagates unchanged
          - The failure counter stays at zero and the circuit stays closed
        """
        breaker = create_circuit_breaker("test_service", failure_threshold=2, exclude=[_ExpectedMiss])

        def missing() -> None:
            raise _ExpectedMiss("gone")

        for _ in range(3):
            with pytest.raises(_ExpectedMiss):
                breaker.call(missing)

        assert breaker.fail_counter == 0
        assert breaker.current_state == pybreaker.STATE_CLOSED


# =============================================================================
# Error Handling Tests
# =============================================================================


class TestHandleCircuitBreakerError:
    """Test suite for handle_circuit_breaker_error function."""

    def test_raises_upstream_error(self) -> None:
        with pytest.raises(UpstreamError, match="kubernetes service is currently unavailable"):
            handle_circuit_breaker_error("kubernetes")


class TestGetBreakerOrRaise:
    """Test suite for _get_breaker_or_raise."""

    def test_returns_breaker_when_present(self) -> None:
        breaker = create_circuit_breaker("test")
        instance = MagicMock()
        instance._breaker = breaker

        assert _get_breaker_or_raise(instance) is breaker

    def test_raises_runtime_error_when_missing(self) -> None:
        class NoBreaker:
            pass

        with pytest.raises(RuntimeError, match="NoBreaker has no circuit breaker"):
            _get_breaker_or_raise(NoBreaker())


# =============================================================================
# with_circuit_breaker Tests
# =============================================================================


class TestWithCircuitBreakerDecorator:
    """Test suite for with_circuit_breaker decorator."""

    def test_decorator_calls_function_successfully(self) -> None:
        class TestClient:
            _breaker = create_circuit_breaker("test")

            @with_circuit_breaker("test")
            def do_work(self, value: int) -> int:
                return value * 2

        assert TestClient().do_work(5) == 10

    def test_decorator_tracks_failures(self) -> None:
        class TestClient:
            _breaker = create_circuit_breaker("test", failure_threshold=2)

            @with_circuit_breaker("test")
            def do_work(self) -> str:
                raise ConnectionError("failed")

        client = TestClient()

        with pytest.raises(ConnectionError):
            client.do_work()
        with pytest.raises(UpstreamError, match="currently unavailable"):
            client.do_work()

    def test_decorator_fails_fast_when_open(self) -> None:
        """Test that an open circuit short-circuits the call."""

        class TestClient:
            _breaker = create_circuit_breaker("test", failure_threshold=1)
            call_count = 0

            @with_circuit_breaker("test")
            def do_work(self) -> str:
                self.call_count += 1
                raise ConnectionError("failed")

        client = TestClient()
        with pytest.raises(UpstreamError):
            client.do_work()
        client.call_count = 0

        with pytest.raises(UpstreamError, match="currently unavailable"):
            client.do_work()

        assert client.call_count == 0

    def test_decorator_raises_runtime_error_without_breaker(self) -> None:
        class TestClient:
            @with_circuit_breaker("test")
            def do_work(self) -> str:
                return "never"

        with pytest.raises(RuntimeError):
            TestClient().do_work()
