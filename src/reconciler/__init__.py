"""Reconciler for managed Postgres clusters on Kubernetes.

The process consumes declarative Create/Update/Delete messages from a pgmq
work queue and drives the cluster toward the requested state: one namespace,
one ingress route and one cluster custom resource per resource name.
"""

__version__ = "0.1.0"
