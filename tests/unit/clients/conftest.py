"""Shared fixtures for client tests.

The Kubernetes API objects and the SQLAlchemy engine are mocked so the client
logic (error translation, retries, circuit breaker, SQL parameters) is tested
in isolation.
"""

# pylint: disable=redefined-outer-name

from unittest.mock import MagicMock

import pytest

from reconciler.clients.kubernetes import KubernetesClusterClient
from reconciler.clients.pgmq import PGMQueueClient
from reconciler.config import KubernetesConfig

# =============================================================================
# Kubernetes
# =============================================================================


@pytest.fixture
def k8s_config() -> KubernetesConfig:
    """Kubernetes settings without backoff sleeps."""
    return KubernetesConfig(max_retries=3, retry_min_wait=0, retry_max_wait=0, circuit_breaker_threshold=3)


@pytest.fixture
def mock_core_api() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_custom_api() -> MagicMock:
    return MagicMock()


@pytest.fixture
def k8s_client(mock_core_api, mock_custom_api, k8s_config) -> KubernetesClusterClient:
    return KubernetesClusterClient(core_api=mock_core_api, custom_api=mock_custom_api, config=k8s_config)


# =============================================================================
# pgmq
# =============================================================================


@pytest.fixture
def mock_engine() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_conn(mock_engine) -> MagicMock:
    """Connection yielded by `engine.begin()`."""
    conn = MagicMock()
    mock_engine.begin.return_value.__enter__.return_value = conn
    return conn


@pytest.fixture
def queue_client(mock_engine, mock_conn) -> PGMQueueClient:
    return PGMQueueClient(engine=mock_engine, max_retries=2, retry_min_wait=0, retry_max_wait=0)
