"""Interfaces of the external systems the reconciler drives.

The reconciliation core depends only on these ABCs; concrete clients live in
the parent `clients` package and tests substitute in-memory fakes.
"""

from .cluster_api import ClusterAPI
from .work_queue import WorkQueue

__all__ = ["ClusterAPI", "WorkQueue"]
