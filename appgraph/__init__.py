"""Resource-graph compiler for exposing applications on a shared cluster."""

from appgraph.auth import AuthBinding, ForwardAuthDirectives, bind_auth
from appgraph.builder import build, compile_app
from appgraph.context import ForwardAuthEndpoints, InfraContext, RoutingBackend
from appgraph.errors import (
    AppGraphError,
    ApplyError,
    ConfigurationError,
    GraphError,
    ValidationError,
)
from appgraph.graph import NodeId, ResourceNode, diff_graphs, topological_sort
from appgraph.models import AppSpec, AuthMode, ResolvedAppSpec, StoragePolicy
from appgraph.normalizer import normalize
from appgraph.storage import StorageBinding, bind_storage

__all__ = [
    "AppGraphError",
    "AppSpec",
    "ApplyError",
    "AuthBinding",
    "AuthMode",
    "ConfigurationError",
    "ForwardAuthDirectives",
    "ForwardAuthEndpoints",
    "GraphError",
    "InfraContext",
    "NodeId",
    "ResolvedAppSpec",
    "ResourceNode",
    "RoutingBackend",
    "StorageBinding",
    "StoragePolicy",
    "ValidationError",
    "bind_auth",
    "bind_storage",
    "build",
    "compile_app",
    "diff_graphs",
    "normalize",
    "topological_sort",
]
