"""Stack configuration schema and loaders."""

from enum import Enum
from pathlib import Path
from typing import Any

import pulumi
import yaml

from appgraph.context import ForwardAuthEndpoints, InfraContext, RoutingBackend


class BootstrapPhase(str, Enum):
    """Cluster bootstrap progress.

    On the first apply the certificate authority's webhook does not exist yet,
    so the cluster issuer cannot be validated. INITIAL skips it; a second apply
    with COMPLETE creates it. Only this program looks at the phase, the
    compiler never does.
    """

    INITIAL = "initial"
    COMPLETE = "complete"


def load_context() -> InfraContext:
    """Load the shared infrastructure context from Pulumi stack config."""
    config = pulumi.Config()

    forward_auth = None
    verify_url = config.get("autheliaVerifyUrl")
    if verify_url:
        headers = config.get("autheliaResponseHeaders")
        forward_auth = ForwardAuthEndpoints(
            verify_url=verify_url,
            signin_url=config.require("autheliaSigninUrl"),
            **(
                {"response_headers": tuple(h.strip() for h in headers.split(","))}
                if headers
                else {}
            ),
        )

    stack = pulumi.get_stack()
    return InfraContext(
        domain=config.require("domain"),
        zone_id=config.require("cloudflareZoneId"),
        tunnel_cname=config.require("tunnelCname"),
        cluster_issuer=config.get("clusterIssuer") or "letsencrypt-prod",
        routing_backend=RoutingBackend(config.get("routingBackend") or "ingress"),
        ingress_class=config.get("ingressClass") or "nginx",
        forward_auth=forward_auth,
        secret_store=config.get("secretStore") or "pulumi-esc",
        backup_bucket=config.get("backupBucket") or f"s3://homelab-{stack}-backups@auto",
        environment=stack,
    )


def load_bootstrap_phase() -> BootstrapPhase:
    """Read the bootstrap phase, honoring the older skipClusterIssuer flag."""
    config = pulumi.Config()

    phase = config.get("bootstrapPhase")
    if phase:
        return BootstrapPhase(phase)
    if config.get_bool("skipClusterIssuer"):
        return BootstrapPhase.INITIAL
    return BootstrapPhase.COMPLETE


def load_app_specs(path: str | Path) -> list[dict[str, Any]]:
    """Read application specs from a YAML file.

    The file holds either a list of specs or a mapping with an ``apps`` list.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("apps", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of applications")
    return data
