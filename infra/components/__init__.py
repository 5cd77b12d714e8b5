"""Homelab infrastructure components."""

from infra.components.cert_manager import ClusterIssuer, create_cluster_issuer
from infra.components.exposed_app import ExposedWebApp
from infra.components.storage import StorageClasses

__all__ = ["ClusterIssuer", "ExposedWebApp", "StorageClasses", "create_cluster_issuer"]
