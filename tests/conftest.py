"""Pytest configuration and shared fixtures."""

import pytest

from appgraph.context import ForwardAuthEndpoints, InfraContext, RoutingBackend

VERIFY_URL = "http://auth.svc/api/verify"
SIGNIN_URL = "https://auth.example.com"


# ============================================================================
# Contexts
# ============================================================================


@pytest.fixture
def context():
    """Classic ingress backend without forward auth."""
    return InfraContext(
        domain="example.com",
        zone_id="zone-123",
        tunnel_cname="tunnel-abc.cfargotunnel.com",
        backup_bucket="s3://homelab-backups@auto",
    )


@pytest.fixture
def forward_context():
    """Classic ingress backend with a forward-auth service."""
    return InfraContext(
        domain="example.com",
        zone_id="zone-123",
        tunnel_cname="tunnel-abc.cfargotunnel.com",
        forward_auth=ForwardAuthEndpoints(verify_url=VERIFY_URL, signin_url=SIGNIN_URL),
    )


@pytest.fixture
def gateway_context():
    """Gateway backend with a forward-auth service."""
    return InfraContext(
        domain="example.com",
        zone_id="zone-123",
        tunnel_cname="tunnel-abc.cfargotunnel.com",
        routing_backend=RoutingBackend.GATEWAY,
        forward_auth=ForwardAuthEndpoints(verify_url=VERIFY_URL, signin_url=SIGNIN_URL),
    )


# ============================================================================
# AppSpecs
# ============================================================================


@pytest.fixture
def basic_spec():
    return {"name": "demo", "image": "ghcr.io/example/demo:1.0", "port": 8080}


@pytest.fixture
def sidecar_spec(basic_spec):
    return {
        **basic_spec,
        "auth": {
            "mode": "sidecar",
            "provider": "google",
            "credentials_ref": "oauth/demo",
            "allowed_emails": ["alice@example.com"],
        },
    }


@pytest.fixture
def forward_spec(basic_spec):
    return {**basic_spec, "auth": {"mode": "forward"}}


@pytest.fixture
def storage_spec(basic_spec):
    return {
        **basic_spec,
        "storage": {"size": "1Gi", "policy": "persistent", "mount_path": "/data"},
    }
