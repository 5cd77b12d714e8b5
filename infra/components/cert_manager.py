"""Cluster issuer for public TLS certificates."""

from typing import Any, Optional

import pulumi
import pulumi_kubernetes as k8s

from infra.config import BootstrapPhase

LETSENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"


def acme_issuer_spec(issuer_name: str, email: str, ingress_class: str, server: str) -> dict[str, Any]:
    return {
        "acme": {
            "server": server,
            "email": email,
            "privateKeySecretRef": {"name": f"{issuer_name}-account-key"},
            "solvers": [{"http01": {"ingress": {"ingressClassName": ingress_class}}}],
        },
    }


class ClusterIssuer(pulumi.ComponentResource):
    """ACME ClusterIssuer solving HTTP-01 challenges through the ingress class.

    Needs a running cert-manager webhook; only create it once the cluster has
    passed the initial bootstrap phase.
    """

    def __init__(
        self,
        name: str,
        issuer_name: str,
        email: str,
        k8s_provider: k8s.Provider,
        ingress_class: str = "nginx",
        server: str = LETSENCRYPT_PRODUCTION,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("homelab:tls:ClusterIssuer", name, None, opts)

        self.issuer_name = issuer_name
        self.spec = acme_issuer_spec(issuer_name, email, ingress_class, server)
        self.issuer = k8s.apiextensions.CustomResource(
            f"{name}-issuer",
            api_version="cert-manager.io/v1",
            kind="ClusterIssuer",
            metadata=k8s.meta.v1.ObjectMetaArgs(name=issuer_name),
            spec=self.spec,
            opts=pulumi.ResourceOptions(parent=self, provider=k8s_provider),
        )

        self.register_outputs({"issuer_name": issuer_name})


def create_cluster_issuer(
    phase: BootstrapPhase,
    issuer_name: str,
    email: str,
    k8s_provider: k8s.Provider,
    ingress_class: str = "nginx",
) -> Optional[ClusterIssuer]:
    """Create the issuer, or nothing while the cluster is still bootstrapping."""
    if phase != BootstrapPhase.COMPLETE:
        pulumi.log.warn(
            "Bootstrap phase 'initial': skipping cluster issuer, re-run with phase 'complete'"
        )
        return None
    if not email:
        raise ValueError("An ACME account email is required once bootstrap is complete")

    return ClusterIssuer(
        "tls",
        issuer_name=issuer_name,
        email=email,
        k8s_provider=k8s_provider,
        ingress_class=ingress_class,
    )
