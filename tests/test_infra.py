"""Tests for the Pulumi side, run against Pulumi's unit-test mocks."""

import asyncio

import pulumi
import pytest


class AppGraphMocks(pulumi.runtime.Mocks):
    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        return [f"{args.name}_id", args.inputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}


pulumi.runtime.set_mocks(AppGraphMocks(), project="homelab", stack="dev", preview=False)
_PULUMI_LOOP = asyncio.get_event_loop()

import pulumi_cloudflare as cloudflare  # noqa: E402
import pulumi_kubernetes as k8s  # noqa: E402

from appgraph.builder import compile_app  # noqa: E402
from appgraph.context import DEFAULT_RESPONSE_HEADERS, ForwardAuthEndpoints, RoutingBackend  # noqa: E402
from appgraph.graph import NodeId  # noqa: E402
from infra.components.cert_manager import (  # noqa: E402
    LETSENCRYPT_PRODUCTION,
    ClusterIssuer,
    acme_issuer_spec,
    create_cluster_issuer,
)
from infra.components.exposed_app import ExposedWebApp  # noqa: E402
from infra.components.storage import StorageClasses  # noqa: E402
from infra.config import (  # noqa: E402
    BootstrapPhase,
    load_app_specs,
    load_bootstrap_phase,
    load_context,
)

BASE_CONFIG = {
    "homelab:domain": "example.com",
    "homelab:cloudflareZoneId": "zone-123",
    "homelab:tunnelCname": "tunnel-abc.cfargotunnel.com",
}


@pytest.fixture(autouse=True)
def _event_loop():
    """Pulumi's mock runtime needs a current event loop; asyncio.run() elsewhere clears it."""
    asyncio.set_event_loop(_PULUMI_LOOP)


@pytest.fixture
def providers():
    return (
        k8s.Provider("test-k8s"),
        cloudflare.Provider("test-cloudflare", api_token="token"),
    )


@pytest.fixture
def stack_config():
    """Set stack config for one test, then clear it."""

    def apply(values):
        pulumi.runtime.set_all_config({**BASE_CONFIG, **values})

    yield apply
    pulumi.runtime.set_all_config({})


def test_every_node_becomes_a_resource(context, storage_spec, providers):
    nodes = compile_app(context, storage_spec)
    app = ExposedWebApp("demo", nodes=nodes, k8s_provider=providers[0], cloudflare_provider=providers[1])

    assert list(app.resources) == [node.id for node in nodes]
    assert isinstance(app.resources[NodeId("Deployment", "demo", "demo")], k8s.apps.v1.Deployment)
    assert isinstance(app.resources[NodeId("DNSRecord", "", "demo-dns")], cloudflare.Record)
    assert isinstance(
        app.resources[NodeId("Certificate", "demo", "demo-tls")], k8s.apiextensions.CustomResource
    )


def test_nodes_out_of_order_rejected(context, basic_spec, providers):
    nodes = compile_app(context, basic_spec)
    with pytest.raises(ValueError):
        ExposedWebApp("demo", nodes=list(reversed(nodes)), k8s_provider=providers[0])


def test_dns_record_needs_cloudflare_provider(context, basic_spec, providers):
    with pytest.raises(ValueError):
        ExposedWebApp("demo", nodes=compile_app(context, basic_spec), k8s_provider=providers[0])


@pulumi.runtime.test
def test_dns_record_points_at_tunnel(context, basic_spec, providers):
    nodes = compile_app(context, basic_spec)
    app = ExposedWebApp("demo", nodes=nodes, k8s_provider=providers[0], cloudflare_provider=providers[1])
    record = app.resources[NodeId("DNSRecord", "", "demo-dns")]

    def check(args):
        name, content, proxied = args
        assert name == "demo.example.com"
        assert content == "tunnel-abc.cfargotunnel.com"
        assert proxied is True

    return pulumi.Output.all(record.name, record.content, record.proxied).apply(check)


@pulumi.runtime.test
def test_storage_classes_retain_volumes(providers):
    storage = StorageClasses("storage", k8s_provider=providers[0])

    def check(policies):
        assert policies == ["Retain", "Retain"]

    return pulumi.Output.all(
        *(storage_class.reclaim_policy for storage_class in storage.classes.values())
    ).apply(check)


def test_bootstrap_phase_defaults_to_complete():
    assert load_bootstrap_phase() == BootstrapPhase.COMPLETE


# ============================================================================
# Stack config
# ============================================================================


def test_load_context_from_stack_config(stack_config):
    stack_config(
        {
            "homelab:autheliaVerifyUrl": "http://authelia.auth.svc/api/verify",
            "homelab:autheliaSigninUrl": "https://auth.example.com",
            "homelab:autheliaResponseHeaders": "Remote-User, Remote-Email",
            "homelab:routingBackend": "gateway",
        }
    )
    context = load_context()

    assert context.forward_auth == ForwardAuthEndpoints(
        verify_url="http://authelia.auth.svc/api/verify",
        signin_url="https://auth.example.com",
        response_headers=("Remote-User", "Remote-Email"),
    )
    assert context.has_forward_auth
    assert context.routing_backend == RoutingBackend.GATEWAY
    assert context.host_for("demo") == "demo.example.com"
    assert context.environment == "dev"
    assert context.backup_bucket == "s3://homelab-dev-backups@auto"
    assert context.cluster_issuer == "letsencrypt-prod"


def test_load_context_defaults(stack_config):
    stack_config(
        {
            "homelab:autheliaVerifyUrl": "http://authelia.auth.svc/api/verify",
            "homelab:autheliaSigninUrl": "https://auth.example.com",
        }
    )
    context = load_context()

    assert context.forward_auth.response_headers == DEFAULT_RESPONSE_HEADERS
    assert context.routing_backend == RoutingBackend.INGRESS
    assert context.ingress_class == "nginx"


def test_load_context_without_forward_auth(stack_config):
    stack_config({})
    assert load_context().forward_auth is None


def test_verify_url_needs_signin_url(stack_config):
    stack_config({"homelab:autheliaVerifyUrl": "http://authelia.auth.svc/api/verify"})
    with pytest.raises(pulumi.ConfigMissingError):
        load_context()


@pytest.mark.parametrize(
    "values, phase",
    [
        ({"homelab:skipClusterIssuer": "true"}, BootstrapPhase.INITIAL),
        ({"homelab:skipClusterIssuer": "false"}, BootstrapPhase.COMPLETE),
        ({"homelab:bootstrapPhase": "initial"}, BootstrapPhase.INITIAL),
        (
            {"homelab:bootstrapPhase": "complete", "homelab:skipClusterIssuer": "true"},
            BootstrapPhase.COMPLETE,
        ),
    ],
)
def test_bootstrap_phase_from_config(stack_config, values, phase):
    stack_config(values)
    assert load_bootstrap_phase() == phase


# ============================================================================
# Cluster issuer
# ============================================================================


def test_acme_issuer_spec():
    spec = acme_issuer_spec("letsencrypt-prod", "ops@example.com", "nginx", LETSENCRYPT_PRODUCTION)
    acme = spec["acme"]

    assert acme["server"] == "https://acme-v02.api.letsencrypt.org/directory"
    assert acme["email"] == "ops@example.com"
    assert acme["privateKeySecretRef"] == {"name": "letsencrypt-prod-account-key"}
    assert acme["solvers"] == [{"http01": {"ingress": {"ingressClassName": "nginx"}}}]


def test_cluster_issuer_skipped_while_bootstrapping(providers):
    issuer = create_cluster_issuer(
        BootstrapPhase.INITIAL,
        issuer_name="letsencrypt-prod",
        email="ops@example.com",
        k8s_provider=providers[0],
    )
    assert issuer is None


def test_cluster_issuer_created_once_complete(providers):
    issuer = create_cluster_issuer(
        BootstrapPhase.COMPLETE,
        issuer_name="letsencrypt-prod",
        email="ops@example.com",
        k8s_provider=providers[0],
        ingress_class="traefik",
    )

    assert isinstance(issuer, ClusterIssuer)
    assert isinstance(issuer.issuer, k8s.apiextensions.CustomResource)
    assert issuer.issuer_name == "letsencrypt-prod"
    assert issuer.spec["acme"]["email"] == "ops@example.com"
    assert issuer.spec["acme"]["solvers"][0]["http01"]["ingress"]["ingressClassName"] == "traefik"


def test_cluster_issuer_needs_email(providers):
    with pytest.raises(ValueError):
        create_cluster_issuer(
            BootstrapPhase.COMPLETE,
            issuer_name="letsencrypt-prod",
            email="",
            k8s_provider=providers[0],
        )


def test_load_app_specs_list_or_mapping(tmp_path):
    as_list = tmp_path / "list.yaml"
    as_list.write_text("- name: demo\n  image: nginx\n  port: 80\n")
    as_mapping = tmp_path / "mapping.yaml"
    as_mapping.write_text("apps:\n  - name: demo\n    image: nginx\n    port: 80\n")

    assert load_app_specs(as_list) == load_app_specs(as_mapping) == [
        {"name": "demo", "image": "nginx", "port": 80}
    ]


def test_load_app_specs_rejects_scalars(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("just a string\n")
    with pytest.raises(ValueError):
        load_app_specs(path)
