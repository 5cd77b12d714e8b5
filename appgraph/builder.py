"""Resource graph builder.

Turns one resolved AppSpec into the ordered list of objects that expose it:

    namespace -> [secrets] -> [storage claim] -> workload -> service
              -> [forward-auth middleware] -> route -> DNS record, certificate

Every object name is derived from the application name plus a fixed suffix,
so compiling an unchanged spec always yields the same graph.
"""

import copy
import logging
from typing import Any, Mapping, Optional, Union

from appgraph.auth import (
    SIDECAR_NAME,
    AuthBinding,
    allowlist_name,
    bind_auth,
    credentials_secret_name,
    middleware_name,
    sidecar_nodes,
)
from appgraph.context import InfraContext
from appgraph.errors import ConfigurationError
from appgraph.graph import (
    PRIORITY_NAMESPACE,
    PRIORITY_NETWORK,
    PRIORITY_PUBLIC,
    PRIORITY_ROUTE,
    PRIORITY_STORAGE,
    PRIORITY_TLS,
    PRIORITY_WORKLOAD,
    NodeId,
    ResourceNode,
    topological_sort,
)
from appgraph.models import AppSpec, AuthMode, ResolvedAppSpec
from appgraph.normalizer import normalize
from appgraph.registry_secrets import pull_secret_nodes
from appgraph.routing import Route, headers_middleware_name, render_forward_auth, render_route
from appgraph.storage import StorageBinding, bind_storage

logger = logging.getLogger(__name__)

SERVICE_PORT = 80
APP_CONTAINER = "app"
STORAGE_VOLUME = "storage"

RESTRICTED_CONTAINER_SECURITY = {
    "allowPrivilegeEscalation": False,
    "runAsNonRoot": True,
    "capabilities": {"drop": ["ALL"]},
    "seccompProfile": {"type": "RuntimeDefault"},
}


# =============================================================================
# DERIVED NAMES
# =============================================================================


def claim_name(app_name: str) -> str:
    return f"{app_name}-storage"


def tls_secret_name(app_name: str) -> str:
    return f"{app_name}-tls"


def dns_record_name(app_name: str) -> str:
    return f"{app_name}-dns"


def derived_names(app_name: str) -> dict[str, str]:
    """Every name the builder may derive for an application."""
    return {
        "namespace": app_name,
        "deployment": app_name,
        "service": app_name,
        "route": app_name,
        "claim": claim_name(app_name),
        "certificate": tls_secret_name(app_name),
        "dns": dns_record_name(app_name),
        "oauth_secret": credentials_secret_name(app_name),
        "oauth_allowlist": allowlist_name(app_name),
        "middleware": middleware_name(app_name),
        "middleware_headers": headers_middleware_name(middleware_name(app_name)),
    }


# =============================================================================
# NODE FACTORIES
# =============================================================================


def _namespace(context: InfraContext, app: ResolvedAppSpec) -> ResourceNode:
    labels = context.common_labels(app.name)
    labels.update(
        {
            "pod-security.kubernetes.io/enforce": "restricted",
            "pod-security.kubernetes.io/audit": "restricted",
            "pod-security.kubernetes.io/warn": "restricted",
        }
    )
    return ResourceNode(
        kind="Namespace",
        name=app.namespace,
        namespace="",
        api_version="v1",
        payload={
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": app.namespace, "labels": labels},
        },
        priority=PRIORITY_NAMESPACE,
    )


def _claim(
    app: ResolvedAppSpec, binding: StorageBinding, namespace_id: NodeId
) -> ResourceNode:
    metadata: dict[str, Any] = {
        "name": claim_name(app.name),
        "namespace": app.namespace,
        "labels": {"app": app.name, **binding.labels},
    }
    if binding.annotations:
        metadata["annotations"] = binding.annotations

    return ResourceNode(
        kind="PersistentVolumeClaim",
        name=claim_name(app.name),
        namespace=app.namespace,
        api_version="v1",
        payload={
            "apiVersion": "v1",
            "kind": "PersistentVolumeClaim",
            "metadata": metadata,
            "spec": {
                "accessModes": ["ReadWriteOnce"],
                "storageClassName": binding.storage_class,
                "resources": {"requests": {"storage": app.storage.size}},
            },
        },
        depends_on=frozenset({namespace_id}),
        priority=PRIORITY_STORAGE,
    )


def _app_container(app: ResolvedAppSpec) -> dict[str, Any]:
    container: dict[str, Any] = {
        "name": APP_CONTAINER,
        "image": app.image,
        "ports": [{"containerPort": app.port, "name": "http"}],
        "env": [{"name": name, "value": value} for name, value in app.env],
        "resources": {"requests": dict(app.requests), "limits": dict(app.limits)},
        "securityContext": copy.deepcopy(RESTRICTED_CONTAINER_SECURITY),
    }
    if app.storage is not None:
        container["volumeMounts"] = [{"name": STORAGE_VOLUME, "mountPath": app.storage.mount_path}]
    return container


def _deployment(
    context: InfraContext,
    app: ResolvedAppSpec,
    auth: AuthBinding,
    depends_on: set[NodeId],
) -> ResourceNode:
    containers = [_app_container(app)]
    volumes: list[dict[str, Any]] = []

    if app.storage is not None:
        volumes.append(
            {"name": STORAGE_VOLUME, "persistentVolumeClaim": {"claimName": claim_name(app.name)}}
        )

    if auth.sidecar is not None:
        containers.append(auth.sidecar.container)
        if auth.sidecar.allowlist_config_map:
            volumes.append(
                {"name": "oauth-allowlist", "configMap": {"name": auth.sidecar.allowlist_config_map}}
            )

    pod_spec: dict[str, Any] = {
        "securityContext": {
            "runAsNonRoot": True,
            "runAsUser": app.run_as_user,
            "runAsGroup": app.run_as_group,
            "fsGroup": app.fs_group,
        },
        "containers": containers,
    }
    if app.image_pull_secret_refs:
        pod_spec["imagePullSecrets"] = [{"name": ref} for ref in app.image_pull_secret_refs]
    if volumes:
        pod_spec["volumes"] = volumes

    metadata: dict[str, Any] = {
        "name": app.name,
        "namespace": app.namespace,
        "labels": context.common_labels(app.name),
    }
    if app.tags:
        metadata["annotations"] = {"homelab/tags": ",".join(app.tags)}

    return ResourceNode(
        kind="Deployment",
        name=app.name,
        namespace=app.namespace,
        api_version="apps/v1",
        payload={
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": metadata,
            "spec": {
                "replicas": app.replica_count,
                "selector": {"matchLabels": {"app": app.name}},
                # Volumes are ReadWriteOnce; never run two pods against one claim
                "strategy": {"type": "Recreate" if app.storage else "RollingUpdate"},
                "template": {
                    "metadata": {"labels": {"app": app.name}},
                    "spec": pod_spec,
                },
            },
        },
        depends_on=frozenset(depends_on),
        priority=PRIORITY_WORKLOAD,
        skip_readiness=app.replica_count == 0,
    )


def _service(app: ResolvedAppSpec, auth: AuthBinding, workload_id: NodeId) -> ResourceNode:
    return ResourceNode(
        kind="Service",
        name=app.name,
        namespace=app.namespace,
        api_version="v1",
        payload={
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": app.name, "namespace": app.namespace},
            "spec": {
                "type": "ClusterIP",
                "selector": {"app": app.name},
                "ports": [
                    {
                        "port": SERVICE_PORT,
                        "targetPort": auth.target_port,
                        "protocol": "TCP",
                        "name": "http",
                    }
                ],
            },
        },
        depends_on=frozenset({workload_id}),
        priority=PRIORITY_NETWORK,
    )


def _certificate(context: InfraContext, app: ResolvedAppSpec, route_id: NodeId) -> ResourceNode:
    name = tls_secret_name(app.name)
    return ResourceNode(
        kind="Certificate",
        name=name,
        namespace=app.namespace,
        api_version="cert-manager.io/v1",
        payload={
            "apiVersion": "cert-manager.io/v1",
            "kind": "Certificate",
            "metadata": {"name": name, "namespace": app.namespace},
            "spec": {
                "secretName": name,
                "issuerRef": {"name": context.cluster_issuer, "kind": "ClusterIssuer"},
                "dnsNames": [app.host],
            },
        },
        depends_on=frozenset({route_id}),
        priority=PRIORITY_TLS,
    )


def _dns_record(context: InfraContext, app: ResolvedAppSpec, route_id: NodeId) -> ResourceNode:
    # Not a Kubernetes object: consumed by the DNS/tunnel provider
    return ResourceNode(
        kind="DNSRecord",
        name=dns_record_name(app.name),
        namespace="",
        api_version="cloudflare/v1",
        payload={
            "zone_id": context.zone_id,
            "name": app.host,
            "type": "CNAME",
            "content": context.tunnel_cname,
            "proxied": True,
            "comment": f"Managed by Pulumi - {app.name}",
        },
        depends_on=frozenset({route_id}),
        priority=PRIORITY_PUBLIC,
    )


# =============================================================================
# BUILD
# =============================================================================


def _check_capabilities(context: InfraContext, app: ResolvedAppSpec) -> None:
    if app.auth.mode == AuthMode.FORWARD and not context.has_forward_auth:
        raise ConfigurationError(
            app.name,
            ["auth.mode: 'forward' requires a forward-auth verify endpoint in the context"],
        )


def build(context: InfraContext, app: ResolvedAppSpec) -> list[ResourceNode]:
    """Compile a resolved AppSpec into a dependency-ordered resource graph.

    Pure: reads nothing from the cluster and has no side effects. All capability
    checks happen before the first node is created, so a failure never yields a
    partial graph.

    Raises:
        ConfigurationError: the context cannot support the requested auth mode
    """
    _check_capabilities(context, app)
    auth = bind_auth(context, app)

    namespace = _namespace(context, app)
    nodes = [namespace]

    secrets = pull_secret_nodes(context, app.namespace, app.image_pull_secret_refs, namespace.id)
    secrets += sidecar_nodes(context, app, auth, namespace.id)
    nodes.extend(secrets)

    workload_deps = {namespace.id} | {node.id for node in secrets}

    if app.storage is not None:
        storage = bind_storage(app.storage.policy, app.namespace, app.name, context.backup_bucket)
        claim = _claim(app, storage, namespace.id)
        nodes.append(claim)
        workload_deps.add(claim.id)

    workload = _deployment(context, app, auth, workload_deps)
    service = _service(app, auth, workload.id)
    nodes.extend([workload, service])

    route = Route(
        name=app.name,
        namespace=app.namespace,
        host=app.host,
        service_name=app.name,
        service_port=SERVICE_PORT,
        tls_secret=tls_secret_name(app.name),
        forward=auth.forward,
        middleware=auth.middleware_name,
    )

    route_deps = {service.id}
    if auth.forward is not None:
        for rendered in render_forward_auth(context, route):
            middleware = ResourceNode(
                kind=rendered.kind,
                name=rendered.payload["metadata"]["name"],
                namespace=app.namespace,
                api_version=rendered.api_version,
                payload=rendered.payload,
                depends_on=frozenset({namespace.id}),
                priority=PRIORITY_ROUTE,
            )
            nodes.append(middleware)
            route_deps.add(middleware.id)

    rendered = render_route(context, route)
    route_node = ResourceNode(
        kind=rendered.kind,
        name=app.name,
        namespace=app.namespace,
        api_version=rendered.api_version,
        payload=rendered.payload,
        depends_on=frozenset(route_deps),
        priority=PRIORITY_ROUTE,
    )
    nodes.append(route_node)
    nodes.append(_dns_record(context, app, route_node.id))
    nodes.append(_certificate(context, app, route_node.id))

    ordered = topological_sort(nodes)
    logger.info(
        "Compiled %s: %d nodes (auth=%s, storage=%s, backend=%s)",
        app.name,
        len(ordered),
        auth.mode.value,
        app.storage.policy.value if app.storage else "none",
        context.routing_backend.value,
    )
    return ordered


def compile_app(
    context: InfraContext, spec: Union[AppSpec, Mapping[str, Any]]
) -> list[ResourceNode]:
    """Normalize and build in one step."""
    return build(context, normalize(spec, context))


def storage_binding_for(
    context: InfraContext, app: ResolvedAppSpec
) -> Optional[StorageBinding]:
    if app.storage is None:
        return None
    return bind_storage(app.storage.policy, app.namespace, app.name, context.backup_bucket)


def workload_containers(nodes: list[ResourceNode]) -> list[str]:
    """Names of the containers in the graph's workload, in pod order."""
    for node in nodes:
        if node.kind == "Deployment":
            return [c["name"] for c in node.payload["spec"]["template"]["spec"]["containers"]]
    return []


def has_sidecar(nodes: list[ResourceNode]) -> bool:
    return SIDECAR_NAME in workload_containers(nodes)
