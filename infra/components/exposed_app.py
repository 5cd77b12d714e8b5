"""Materializes a compiled application graph as Pulumi resources."""

from typing import Optional

import pulumi
import pulumi_cloudflare as cloudflare
import pulumi_kubernetes as k8s

from appgraph.graph import NodeId, ResourceNode

SKIP_AWAIT_ANNOTATION = "pulumi.com/skipAwait"


class ExposedWebApp(pulumi.ComponentResource):
    """One application: every node of its resource graph, with the graph's
    dependency edges mirrored as ``depends_on``.

    Nodes must be passed in dependency order, as returned by the compiler.
    """

    def __init__(
        self,
        name: str,
        nodes: list[ResourceNode],
        k8s_provider: k8s.Provider,
        cloudflare_provider: Optional[cloudflare.Provider] = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("homelab:apps:ExposedWebApp", name, None, opts)

        self.k8s_provider = k8s_provider
        self.cloudflare_provider = cloudflare_provider
        self.resources: dict[NodeId, pulumi.Resource] = {}

        for node in nodes:
            missing = [str(dep) for dep in node.depends_on if dep not in self.resources]
            if missing:
                raise ValueError(f"{node.id} was given before its dependencies: {missing}")

            depends_on = [self.resources[dep] for dep in sorted(node.depends_on)]
            self.resources[node.id] = self._create(node, depends_on)

        self.register_outputs(
            {
                "resources": [str(node_id) for node_id in self.resources],
            }
        )

    def _create(self, node: ResourceNode, depends_on: list[pulumi.Resource]) -> pulumi.Resource:
        resource_name = f"{node.kind.lower()}-{node.namespace or 'cluster'}-{node.name}"

        if node.kind == "DNSRecord":
            if self.cloudflare_provider is None:
                raise ValueError(f"{node.id} needs a Cloudflare provider")
            payload = node.payload
            return cloudflare.Record(
                resource_name,
                zone_id=payload["zone_id"],
                name=payload["name"],
                type=payload["type"],
                content=payload["content"],
                proxied=payload["proxied"],
                comment=payload["comment"],
                opts=pulumi.ResourceOptions(
                    parent=self, provider=self.cloudflare_provider, depends_on=depends_on
                ),
            )

        opts = pulumi.ResourceOptions(
            parent=self, provider=self.k8s_provider, depends_on=depends_on
        )
        metadata = dict(node.payload["metadata"])
        if node.skip_readiness:
            # Scaled to zero: the workload exists but never reports ready
            metadata["annotations"] = {
                **metadata.get("annotations", {}),
                SKIP_AWAIT_ANNOTATION: "true",
            }

        if node.kind == "Namespace":
            return k8s.core.v1.Namespace(resource_name, metadata=metadata, opts=opts)
        if node.kind == "ConfigMap":
            return k8s.core.v1.ConfigMap(
                resource_name, metadata=metadata, data=node.payload["data"], opts=opts
            )
        if node.kind == "PersistentVolumeClaim":
            return k8s.core.v1.PersistentVolumeClaim(
                resource_name, metadata=metadata, spec=node.payload["spec"], opts=opts
            )
        if node.kind == "Deployment":
            return k8s.apps.v1.Deployment(
                resource_name, metadata=metadata, spec=node.payload["spec"], opts=opts
            )
        if node.kind == "Service":
            return k8s.core.v1.Service(
                resource_name, metadata=metadata, spec=node.payload["spec"], opts=opts
            )
        if node.kind == "Ingress":
            return k8s.networking.v1.Ingress(
                resource_name, metadata=metadata, spec=node.payload["spec"], opts=opts
            )

        # ExternalSecret, Middleware, HTTPRoute, Certificate
        return k8s.apiextensions.CustomResource(
            resource_name,
            api_version=node.api_version,
            kind=node.kind,
            metadata=metadata,
            spec=node.payload["spec"],
            opts=opts,
        )
