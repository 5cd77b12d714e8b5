"""Authentication binder.

Decides how an application is protected and produces the pieces the graph
builder wires in:

- none: the service targets the application port directly
- sidecar: an oauth2-proxy container is injected into the pod and the service
  targets the proxy port; the application stays reachable on loopback only
- forward: the route delegates every request to the external authentication
  service; no container is added

Forward-auth directives are backend-agnostic. The route renderers translate
them into nginx annotations or Traefik middleware.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from appgraph.context import InfraContext
from appgraph.errors import ConfigurationError
from appgraph.graph import (
    PRIORITY_SECRETS,
    NodeId,
    ResourceNode,
)
from appgraph.models import AuthMode, OAuthProvider, ResolvedAppSpec

logger = logging.getLogger(__name__)

SIDECAR_NAME = "oauth-proxy"
SIDECAR_IMAGE = "quay.io/oauth2-proxy/oauth2-proxy:v7.6.0"
SIDECAR_PORT = 4180
ALLOWLIST_MOUNT_PATH = "/etc/oauth2-proxy"
ALLOWLIST_FILE = "emails.txt"

# Public traffic is TLS-terminated before it reaches the routing layer, so the
# scheme seen by the authentication service is pinned rather than forwarded.
EXTERNAL_SCHEME = "https"

ORIGINAL_URL = "X-Original-URL"
ORIGINAL_METHOD = "X-Original-Method"
FORWARDED_HOST = "X-Forwarded-Host"
FORWARDED_PROTO = "X-Forwarded-Proto"
FORWARDED_URI = "X-Forwarded-Uri"
FORWARDED_METHOD = "X-Forwarded-Method"

REQUIRED_FORWARD_HEADERS = frozenset({ORIGINAL_URL, ORIGINAL_METHOD, FORWARDED_HOST, FORWARDED_PROTO})


class HeaderSource(str, Enum):
    """Where the value of a delegated request header comes from."""

    EXTERNAL_URL = "external-url"
    METHOD = "method"
    HOST = "host"
    EXTERNAL_SCHEME = "external-scheme"
    URI = "uri"


@dataclass(frozen=True)
class HeaderDirective:
    header: str
    source: HeaderSource


FORWARD_HEADER_DIRECTIVES = (
    HeaderDirective(ORIGINAL_URL, HeaderSource.EXTERNAL_URL),
    HeaderDirective(ORIGINAL_METHOD, HeaderSource.METHOD),
    HeaderDirective(FORWARDED_HOST, HeaderSource.HOST),
    HeaderDirective(FORWARDED_PROTO, HeaderSource.EXTERNAL_SCHEME),
    HeaderDirective(FORWARDED_URI, HeaderSource.URI),
)


@dataclass(frozen=True)
class ForwardAuthDirectives:
    """What the route must do before forwarding a request upstream."""

    verify_url: str
    signin_url: str
    host: str
    request_headers: tuple[HeaderDirective, ...]
    response_headers: tuple[str, ...]
    method: str = "GET"

    @property
    def header_names(self) -> frozenset[str]:
        return frozenset(directive.header for directive in self.request_headers)


@dataclass(frozen=True)
class SidecarBinding:
    container: dict[str, Any]
    credentials_secret: str
    allowlist_config_map: Optional[str] = None


@dataclass(frozen=True)
class AuthBinding:
    """Result of binding an application to an authentication mode."""

    mode: AuthMode
    target_port: int
    sidecar: Optional[SidecarBinding] = None
    forward: Optional[ForwardAuthDirectives] = None
    middleware_name: Optional[str] = None


def credentials_secret_name(app_name: str) -> str:
    return f"{app_name}-oauth"


def allowlist_name(app_name: str) -> str:
    return f"{app_name}-oauth-allowlist"


def middleware_name(app_name: str) -> str:
    return f"{app_name}-forward-auth"


def cookie_secret_key(app_name: str) -> str:
    """Secrets broker key of the per-app session secret."""
    return f"{app_name}/oauth/cookieSecret"


def _secret_env(env_name: str, secret: str, key: str) -> dict[str, Any]:
    return {
        "name": env_name,
        "valueFrom": {"secretKeyRef": {"name": secret, "key": key}},
    }


def _sidecar_container(app: ResolvedAppSpec) -> SidecarBinding:
    auth = app.auth
    secret = credentials_secret_name(app.name)

    args = [
        f"--http-address=0.0.0.0:{SIDECAR_PORT}",
        f"--upstream=http://127.0.0.1:{app.port}/",
        f"--provider={auth.provider.value}",
        f"--redirect-url={EXTERNAL_SCHEME}://{app.host}/oauth2/callback",
        "--reverse-proxy=true",
        "--cookie-secure=true",
        "--cookie-httponly=true",
        "--set-xauthrequest=true",
        "--skip-provider-button=true",
    ]
    if auth.provider == OAuthProvider.OIDC:
        args.append(f"--oidc-issuer-url={auth.oidc_issuer_url}")
    args.extend(f"--email-domain={domain}" for domain in auth.allowed_domains)
    args.extend(f"--github-org={org}" for org in auth.allowed_orgs)
    if auth.allowed_orgs and not auth.allowed_domains:
        # Organization membership is the predicate; any email domain within it
        args.append("--email-domain=*")

    container: dict[str, Any] = {
        "name": SIDECAR_NAME,
        "image": SIDECAR_IMAGE,
        "ports": [{"containerPort": SIDECAR_PORT, "name": "oauth-http"}],
        "args": args,
        "env": [
            _secret_env("OAUTH2_PROXY_CLIENT_ID", secret, "clientId"),
            _secret_env("OAUTH2_PROXY_CLIENT_SECRET", secret, "clientSecret"),
            _secret_env("OAUTH2_PROXY_COOKIE_SECRET", secret, "cookieSecret"),
        ],
        "resources": {
            "requests": {"cpu": "10m", "memory": "32Mi"},
            "limits": {"cpu": "100m", "memory": "128Mi"},
        },
        "securityContext": {
            "allowPrivilegeEscalation": False,
            "runAsNonRoot": True,
            "capabilities": {"drop": ["ALL"]},
            "seccompProfile": {"type": "RuntimeDefault"},
        },
    }

    allowlist = None
    if auth.allowed_emails:
        allowlist = allowlist_name(app.name)
        args.append(f"--authenticated-emails-file={ALLOWLIST_MOUNT_PATH}/{ALLOWLIST_FILE}")
        container["volumeMounts"] = [
            {"name": "oauth-allowlist", "mountPath": ALLOWLIST_MOUNT_PATH, "readOnly": True}
        ]

    return SidecarBinding(
        container=container,
        credentials_secret=secret,
        allowlist_config_map=allowlist,
    )


def bind_auth(context: InfraContext, app: ResolvedAppSpec) -> AuthBinding:
    """Select the authentication variant for an application.

    Raises:
        ConfigurationError: forward-auth requested but the context has no
            verify endpoint; never falls back to unauthenticated routing
    """
    mode = app.auth.mode

    if mode == AuthMode.SIDECAR:
        logger.debug("Binding %s to sidecar authentication", app.name)
        return AuthBinding(
            mode=mode,
            target_port=SIDECAR_PORT,
            sidecar=_sidecar_container(app),
        )

    if mode == AuthMode.FORWARD:
        if not context.has_forward_auth:
            raise ConfigurationError(
                app.name,
                ["auth.mode: 'forward' requires a forward-auth verify endpoint in the context"],
            )
        endpoints = context.forward_auth
        logger.debug("Binding %s to forward authentication via %s", app.name, endpoints.verify_url)
        return AuthBinding(
            mode=mode,
            target_port=app.port,
            forward=ForwardAuthDirectives(
                verify_url=endpoints.verify_url,
                signin_url=endpoints.signin_url,
                host=app.host,
                request_headers=FORWARD_HEADER_DIRECTIVES,
                response_headers=tuple(endpoints.response_headers),
            ),
            middleware_name=middleware_name(app.name),
        )

    return AuthBinding(mode=AuthMode.NONE, target_port=app.port)


def sidecar_nodes(
    context: InfraContext,
    app: ResolvedAppSpec,
    binding: AuthBinding,
    namespace_id: NodeId,
) -> list[ResourceNode]:
    """Objects the sidecar needs next to the pod: credentials and allow-list."""
    if binding.sidecar is None:
        return []

    secret = binding.sidecar.credentials_secret
    ref = app.auth.credentials_ref
    nodes = [
        ResourceNode(
            kind="ExternalSecret",
            name=secret,
            namespace=app.namespace,
            api_version="external-secrets.io/v1beta1",
            payload={
                "apiVersion": "external-secrets.io/v1beta1",
                "kind": "ExternalSecret",
                "metadata": {"name": secret, "namespace": app.namespace},
                "spec": {
                    "refreshInterval": "1h",
                    "secretStoreRef": {"name": context.secret_store, "kind": "ClusterSecretStore"},
                    "target": {"name": secret, "creationPolicy": "Owner"},
                    "data": [
                        {"secretKey": "clientId", "remoteRef": {"key": f"{ref}/clientId"}},
                        {"secretKey": "clientSecret", "remoteRef": {"key": f"{ref}/clientSecret"}},
                        # Session secret is per app even when the OAuth client is shared
                        {"secretKey": "cookieSecret", "remoteRef": {"key": cookie_secret_key(app.name)}},
                    ],
                },
            },
            depends_on=frozenset({namespace_id}),
            priority=PRIORITY_SECRETS,
        )
    ]

    allowlist = binding.sidecar.allowlist_config_map
    if allowlist:
        nodes.append(
            ResourceNode(
                kind="ConfigMap",
                name=allowlist,
                namespace=app.namespace,
                api_version="v1",
                payload={
                    "apiVersion": "v1",
                    "kind": "ConfigMap",
                    "metadata": {"name": allowlist, "namespace": app.namespace},
                    "data": {ALLOWLIST_FILE: "".join(f"{email}\n" for email in app.auth.allowed_emails)},
                },
                depends_on=frozenset({namespace_id}),
                priority=PRIORITY_SECRETS,
            )
        )
    return nodes
