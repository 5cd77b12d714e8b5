"""Shared infrastructure context consumed by every application build."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

DEFAULT_RESPONSE_HEADERS = ("Remote-User", "Remote-Name", "Remote-Groups", "Remote-Email")


class RoutingBackend(str, Enum):
    """How public routes are rendered."""

    INGRESS = "ingress"
    GATEWAY = "gateway"


@dataclass(frozen=True)
class ForwardAuthEndpoints:
    """Endpoints of the external authentication service."""

    verify_url: str
    signin_url: str
    # Identity headers copied from the verify response to the upstream request
    response_headers: tuple[str, ...] = DEFAULT_RESPONSE_HEADERS


@dataclass(frozen=True)
class InfraContext:
    """References to cluster-wide infrastructure, produced once per cluster.

    The context is never mutated after construction and can be shared by
    concurrent builds for different applications.
    """

    # Public DNS / tunnel
    domain: str
    zone_id: str
    tunnel_cname: str

    # TLS
    cluster_issuer: str = "letsencrypt-prod"

    # Routing
    routing_backend: RoutingBackend = RoutingBackend.INGRESS
    ingress_class: str = "nginx"
    gateway_name: str = "homelab-gateway"
    gateway_namespace: str = "traefik-system"

    # Authentication
    forward_auth: Optional[ForwardAuthEndpoints] = None

    # Secrets broker
    secret_store: str = "pulumi-esc"

    # Backups
    backup_bucket: str = "s3://homelab-backups@auto"

    environment: str = "dev"
    extra_labels: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def has_forward_auth(self) -> bool:
        return self.forward_auth is not None and bool(self.forward_auth.verify_url)

    def host_for(self, name: str) -> str:
        """Default public host for an application."""
        return f"{name}.{self.domain}"

    def common_labels(self, name: str) -> dict[str, str]:
        labels = {
            "app": name,
            "environment": self.environment,
            "app.kubernetes.io/managed-by": "appgraph",
        }
        labels.update(dict(self.extra_labels))
        return labels
