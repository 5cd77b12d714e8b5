"""Kubernetes and Cloudflare provider configuration."""

from typing import Optional

import pulumi
import pulumi_cloudflare as cloudflare
import pulumi_kubernetes as k8s


def create_k8s_provider(
    name: str,
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
) -> k8s.Provider:
    """Create Kubernetes provider.

    Args:
        name: Provider name prefix
        kubeconfig: Kubeconfig contents or path (defaults to the ambient kubeconfig)
        context: Kubeconfig context to select
    """
    return k8s.Provider(
        f"{name}-k8s",
        kubeconfig=kubeconfig,
        context=context,
        enable_server_side_apply=True,
    )


def create_cloudflare_provider(
    name: str,
    api_token: pulumi.Output[str],
) -> cloudflare.Provider:
    """Create Cloudflare provider for DNS records.

    Args:
        name: Provider name prefix
        api_token: Scoped API token with DNS edit rights on the zone
    """
    return cloudflare.Provider(
        f"{name}-cloudflare",
        api_token=api_token,
    )
