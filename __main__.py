"""Homelab apps - Main entry point for Pulumi infrastructure deployment."""

import pulumi

from appgraph import ConfigurationError, ValidationError, compile_app
from infra.components.cert_manager import create_cluster_issuer
from infra.components.exposed_app import ExposedWebApp
from infra.components.storage import StorageClasses
from infra.config import load_app_specs, load_bootstrap_phase, load_context
from infra.providers import create_cloudflare_provider, create_k8s_provider

config = pulumi.Config()

# Shared infrastructure context, built once and passed to every compile
context = load_context()
phase = load_bootstrap_phase()

k8s_provider = create_k8s_provider(
    name="homelab",
    kubeconfig=config.get("kubeconfig"),
    context=config.get("kubeContext"),
)
cloudflare_provider = create_cloudflare_provider(
    name="homelab",
    api_token=pulumi.Config("cloudflare").require_secret("apiToken"),
)

# 1. Cluster-scoped objects, provisioned before any application
storage = StorageClasses("storage", k8s_provider=k8s_provider)

platform_deps: list[pulumi.Resource] = [storage]

# 2. Certificate issuer (skipped until cert-manager's webhook is up)
issuer = create_cluster_issuer(
    phase,
    issuer_name=context.cluster_issuer,
    email=config.get("email") or "",
    k8s_provider=k8s_provider,
    ingress_class=context.ingress_class,
)
if issuer is not None:
    platform_deps.append(issuer)

# 3. Applications
apps: dict[str, ExposedWebApp] = {}
urls: dict[str, str] = {}
for spec in load_app_specs(config.get("appsFile") or "apps.yaml"):
    try:
        nodes = compile_app(context, spec)
    except (ValidationError, ConfigurationError) as e:
        # Reported before anything is applied; other apps proceed
        pulumi.log.error(str(e))
        continue

    app = ExposedWebApp(
        spec["name"],
        nodes=nodes,
        k8s_provider=k8s_provider,
        cloudflare_provider=cloudflare_provider,
        opts=pulumi.ResourceOptions(depends_on=platform_deps),
    )
    apps[spec["name"]] = app
    urls[spec["name"]] = next(
        f"https://{node.payload['name']}" for node in nodes if node.kind == "DNSRecord"
    )

# Exports
pulumi.export("bootstrap_phase", phase.value)
pulumi.export("routing_backend", context.routing_backend.value)
pulumi.export("apps", urls)
