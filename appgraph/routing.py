"""Public route model and its two renderers (classic ingress, gateway route)."""

from dataclasses import dataclass
from typing import Any, Optional

from appgraph.auth import (
    EXTERNAL_SCHEME,
    FORWARDED_HOST,
    FORWARDED_METHOD,
    FORWARDED_PROTO,
    FORWARDED_URI,
    ForwardAuthDirectives,
    HeaderSource,
)
from appgraph.context import InfraContext, RoutingBackend

NGINX = "nginx.ingress.kubernetes.io"

# nginx variables used to fill delegated headers
NGINX_HEADER_VALUES = {
    HeaderSource.EXTERNAL_URL: f"{EXTERNAL_SCHEME}://$host$request_uri",
    HeaderSource.METHOD: "$request_method",
    HeaderSource.HOST: "$host",
    HeaderSource.EXTERNAL_SCHEME: EXTERNAL_SCHEME,
    HeaderSource.URI: "$request_uri",
}


@dataclass(frozen=True)
class Route:
    """Backend-agnostic description of one public route."""

    name: str
    namespace: str
    host: str
    service_name: str
    service_port: int
    tls_secret: str
    forward: Optional[ForwardAuthDirectives] = None
    middleware: Optional[str] = None


@dataclass(frozen=True)
class Rendered:
    kind: str
    api_version: str
    payload: dict[str, Any]


# =============================================================================
# CLASSIC INGRESS
# =============================================================================


def _ingress(context: InfraContext, route: Route) -> Rendered:
    # TLS terminates at the tunnel; redirecting here would loop
    annotations = {f"{NGINX}/ssl-redirect": "false"}

    if route.forward is not None:
        forward = route.forward
        annotations.update(
            {
                f"{NGINX}/auth-url": forward.verify_url,
                f"{NGINX}/auth-method": forward.method,
                f"{NGINX}/auth-signin": (
                    f"{forward.signin_url}?rm=$request_method"
                    f"&rd={EXTERNAL_SCHEME}://$http_host$request_uri"
                ),
                f"{NGINX}/auth-response-headers": ",".join(forward.response_headers),
                f"{NGINX}/auth-proxy-set-headers": f"{route.namespace}/{route.middleware}",
                f"{NGINX}/use-forwarded-headers": "true",
                f"{NGINX}/compute-full-forwarded-for": "true",
            }
        )

    payload = {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": route.name,
            "namespace": route.namespace,
            "annotations": annotations,
        },
        "spec": {
            "ingressClassName": context.ingress_class,
            "tls": [{"hosts": [route.host], "secretName": route.tls_secret}],
            "rules": [
                {
                    "host": route.host,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {
                                        "name": route.service_name,
                                        "port": {"number": route.service_port},
                                    }
                                },
                            }
                        ]
                    },
                }
            ],
        },
    }
    return Rendered("Ingress", "networking.k8s.io/v1", payload)


def _ingress_forward_auth(route: Route) -> Rendered:
    """ConfigMap of headers that ingress-nginx sends to the verify endpoint."""
    payload = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": route.middleware, "namespace": route.namespace},
        "data": {
            directive.header: NGINX_HEADER_VALUES[directive.source]
            for directive in route.forward.request_headers
        },
    }
    return Rendered("ConfigMap", "v1", payload)


# =============================================================================
# GATEWAY ROUTE
# =============================================================================

# Headers Traefik's forwardAuth writes on the verify request itself. Every
# directive is delivered through these; X-Original-* never reach the verify
# endpoint on this backend because Traefik would only copy the client's values.
TRAEFIK_HEADER_BINDINGS = {
    HeaderSource.EXTERNAL_URL: (FORWARDED_PROTO, FORWARDED_HOST, FORWARDED_URI),
    HeaderSource.METHOD: (FORWARDED_METHOD,),
    HeaderSource.HOST: (FORWARDED_HOST,),
    HeaderSource.EXTERNAL_SCHEME: (FORWARDED_PROTO,),
    HeaderSource.URI: (FORWARDED_URI,),
}

# Client headers passed through to the verify endpoint (session and credentials)
TRAEFIK_COPIED_HEADERS = ("Accept", "Authorization", "Cookie")


def headers_middleware_name(middleware: str) -> str:
    return f"{middleware}-headers"


def _pinned_request_headers(route: Route) -> dict[str, str]:
    """Request headers set before forwardAuth runs.

    Scheme and host are pinned to the public values. Every other header a
    directive relies on is cleared (an empty value removes it), so Traefik
    derives it from the live request instead of trusting the client's copy.
    """
    headers: dict[str, str] = {}
    for directive in route.forward.request_headers:
        for header in TRAEFIK_HEADER_BINDINGS[directive.source]:
            headers.setdefault(header, "")
        headers.setdefault(directive.header, "")

    headers[FORWARDED_PROTO] = EXTERNAL_SCHEME
    headers[FORWARDED_HOST] = route.host
    return headers


def _extension_ref(name: str) -> dict[str, Any]:
    return {
        "type": "ExtensionRef",
        "extensionRef": {"group": "traefik.io", "kind": "Middleware", "name": name},
    }


def _http_route(context: InfraContext, route: Route) -> Rendered:
    rule: dict[str, Any] = {
        "matches": [{"path": {"type": "PathPrefix", "value": "/"}}],
        "backendRefs": [{"name": route.service_name, "port": route.service_port}],
    }
    if route.forward is not None:
        # Filters run in order: pin headers, then delegate
        rule["filters"] = [
            _extension_ref(headers_middleware_name(route.middleware)),
            _extension_ref(route.middleware),
        ]

    payload = {
        "apiVersion": "gateway.networking.k8s.io/v1",
        "kind": "HTTPRoute",
        "metadata": {"name": route.name, "namespace": route.namespace},
        "spec": {
            "parentRefs": [
                {"name": context.gateway_name, "namespace": context.gateway_namespace}
            ],
            "hostnames": [route.host],
            "rules": [rule],
        },
    }
    return Rendered("HTTPRoute", "gateway.networking.k8s.io/v1", payload)


def _gateway_forward_auth(route: Route) -> list[Rendered]:
    forward = route.forward
    headers_name = headers_middleware_name(route.middleware)
    pin = {
        "apiVersion": "traefik.io/v1alpha1",
        "kind": "Middleware",
        "metadata": {"name": headers_name, "namespace": route.namespace},
        "spec": {"headers": {"customRequestHeaders": _pinned_request_headers(route)}},
    }
    verify = {
        "apiVersion": "traefik.io/v1alpha1",
        "kind": "Middleware",
        "metadata": {"name": route.middleware, "namespace": route.namespace},
        "spec": {
            "forwardAuth": {
                "address": forward.verify_url,
                # Take the pinned X-Forwarded-* from the headers middleware
                "trustForwardHeader": True,
                "authRequestHeaders": list(TRAEFIK_COPIED_HEADERS),
                "authResponseHeaders": list(forward.response_headers),
            }
        },
    }
    return [
        Rendered("Middleware", "traefik.io/v1alpha1", pin),
        Rendered("Middleware", "traefik.io/v1alpha1", verify),
    ]


# =============================================================================
# DISPATCH
# =============================================================================


def render_route(context: InfraContext, route: Route) -> Rendered:
    if context.routing_backend == RoutingBackend.GATEWAY:
        return _http_route(context, route)
    return _ingress(context, route)


def render_forward_auth(context: InfraContext, route: Route) -> list[Rendered]:
    """Objects the route needs for forward auth, in the order they apply."""
    if route.forward is None or not route.middleware:
        raise ValueError(f"Route {route.name} has no forward-auth directives")
    if context.routing_backend == RoutingBackend.GATEWAY:
        return _gateway_forward_auth(route)
    return [_ingress_forward_auth(route)]
