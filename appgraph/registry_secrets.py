"""ExternalSecrets for well-known container registry pull secrets."""

from dataclasses import dataclass

from appgraph.context import InfraContext
from appgraph.graph import PRIORITY_SECRETS, NodeId, ResourceNode


@dataclass(frozen=True)
class RegistryCredentials:
    registry: str
    username_key: str
    token_key: str


# Pull secret name -> where the secrets broker keeps its credentials
KNOWN_PULL_SECRETS = {
    "ghcr-pull-secret": RegistryCredentials(
        registry="ghcr.io",
        username_key="github-username",
        token_key="github-token",
    ),
    "dockerhub-pull-secret": RegistryCredentials(
        registry="https://index.docker.io/v1/",
        username_key="dockerhub-credentials/username",
        token_key="dockerhub-credentials/token",
    ),
}


def _dockerconfig_template(registry: str) -> str:
    return (
        '{"auths":{"%s":{"username":"{{ .username }}","password":"{{ .token }}",'
        '"auth":"{{ printf "%%s:%%s" .username .token | b64enc }}"}}}' % registry
    )


def pull_secret_nodes(
    context: InfraContext,
    namespace: str,
    refs: tuple[str, ...],
    namespace_id: NodeId,
) -> list[ResourceNode]:
    """One ExternalSecret per known pull secret; unknown names are only referenced."""
    nodes = []
    for ref in refs:
        credentials = KNOWN_PULL_SECRETS.get(ref)
        if credentials is None:
            continue

        nodes.append(
            ResourceNode(
                kind="ExternalSecret",
                name=ref,
                namespace=namespace,
                api_version="external-secrets.io/v1beta1",
                payload={
                    "apiVersion": "external-secrets.io/v1beta1",
                    "kind": "ExternalSecret",
                    "metadata": {"name": ref, "namespace": namespace},
                    "spec": {
                        "refreshInterval": "1h",
                        "secretStoreRef": {
                            "name": context.secret_store,
                            "kind": "ClusterSecretStore",
                        },
                        "target": {
                            "name": ref,
                            "creationPolicy": "Owner",
                            "template": {
                                "type": "kubernetes.io/dockerconfigjson",
                                "data": {
                                    ".dockerconfigjson": _dockerconfig_template(
                                        credentials.registry
                                    )
                                },
                            },
                        },
                        "data": [
                            {"secretKey": "username", "remoteRef": {"key": credentials.username_key}},
                            {"secretKey": "token", "remoteRef": {"key": credentials.token_key}},
                        ],
                    },
                },
                depends_on=frozenset({namespace_id}),
                priority=PRIORITY_SECRETS,
            )
        )
    return nodes
