"""Resource nodes and the DAG utilities used to order, diff and serialize them."""

import heapq
import json
from dataclasses import dataclass, field
from typing import Any, Iterable

import yaml

from appgraph.errors import GraphError

# Ordering hints for nodes that are ready at the same time
PRIORITY_NAMESPACE = 0
PRIORITY_SECRETS = 10
PRIORITY_STORAGE = 20
PRIORITY_WORKLOAD = 30
PRIORITY_NETWORK = 40
PRIORITY_ROUTE = 50
PRIORITY_PUBLIC = 60
PRIORITY_TLS = 70


@dataclass(frozen=True, order=True)
class NodeId:
    """Identity of a node. Cluster-scoped and external objects use an empty namespace."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "NodeId":
        parts = value.split("/")
        if len(parts) == 2:
            return cls(parts[0], "", parts[1])
        if len(parts) == 3:
            return cls(parts[0], parts[1], parts[2])
        raise ValueError(f"Invalid node id '{value}'")


@dataclass(frozen=True)
class ResourceNode:
    """One target object of a resource graph."""

    kind: str
    name: str
    namespace: str
    api_version: str
    payload: dict[str, Any] = field(compare=False, hash=False)
    depends_on: frozenset[NodeId] = frozenset()
    priority: int = 100
    # Set for workloads scaled to zero: they are applied but never become ready
    skip_readiness: bool = False

    @property
    def id(self) -> NodeId:
        return NodeId(self.kind, self.namespace, self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
            "api_version": self.api_version,
            "depends_on": sorted(str(dep) for dep in self.depends_on),
            "priority": self.priority,
            "skip_readiness": self.skip_readiness,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceNode":
        return cls(
            kind=data["kind"],
            name=data["name"],
            namespace=data["namespace"],
            api_version=data["api_version"],
            payload=data["payload"],
            depends_on=frozenset(NodeId.parse(dep) for dep in data.get("depends_on", [])),
            priority=data.get("priority", 100),
            skip_readiness=data.get("skip_readiness", False),
        )


@dataclass
class GraphDiff:
    """Changes needed to move a cluster from one graph to another."""

    create: list[ResourceNode] = field(default_factory=list)
    update: list[ResourceNode] = field(default_factory=list)
    delete: list[ResourceNode] = field(default_factory=list)
    unchanged: list[ResourceNode] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.create or self.update or self.delete)

    def summary(self) -> dict[str, list[str]]:
        return {
            "create": [str(node.id) for node in self.create],
            "update": [str(node.id) for node in self.update],
            "delete": [str(node.id) for node in self.delete],
            "unchanged": [str(node.id) for node in self.unchanged],
        }


def _index(nodes: Iterable[ResourceNode]) -> dict[NodeId, ResourceNode]:
    index: dict[NodeId, ResourceNode] = {}
    for node in nodes:
        if node.id in index:
            raise GraphError(f"Duplicate node {node.id}")
        index[node.id] = node

    for node in index.values():
        missing = [str(dep) for dep in node.depends_on if dep not in index]
        if missing:
            raise GraphError(f"{node.id} depends on nodes outside the graph", missing)
    return index


def topological_sort(nodes: Iterable[ResourceNode]) -> list[ResourceNode]:
    """Order nodes so that every node follows all of its dependencies.

    Ties are broken by (priority, id), which makes the order a pure function
    of the node set.
    """
    index = _index(nodes)
    remaining = {node_id: len(node.depends_on) for node_id, node in index.items()}
    dependents: dict[NodeId, list[NodeId]] = {node_id: [] for node_id in index}
    for node in index.values():
        for dep in node.depends_on:
            dependents[dep].append(node.id)

    ready = [(index[n].priority, n) for n, count in remaining.items() if count == 0]
    heapq.heapify(ready)

    ordered: list[ResourceNode] = []
    while ready:
        _, node_id = heapq.heappop(ready)
        ordered.append(index[node_id])
        for child in dependents[node_id]:
            remaining[child] -= 1
            if remaining[child] == 0:
                heapq.heappush(ready, (index[child].priority, child))

    if len(ordered) != len(index):
        cyclic = sorted(str(n) for n, count in remaining.items() if count > 0)
        raise GraphError("Dependency cycle detected", cyclic)
    return ordered


def apply_waves(nodes: Iterable[ResourceNode]) -> list[list[ResourceNode]]:
    """Group nodes into waves; nodes inside one wave have no edges between them."""
    ordered = topological_sort(nodes)
    depth: dict[NodeId, int] = {}
    for node in ordered:
        depth[node.id] = 1 + max((depth[dep] for dep in node.depends_on), default=-1)

    waves: list[list[ResourceNode]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
    for node in ordered:
        waves[depth[node.id]].append(node)
    return waves


def diff_graphs(
    previous: Iterable[ResourceNode], current: Iterable[ResourceNode]
) -> GraphDiff:
    """Compare two graphs by node identity and content.

    Creates and updates follow the current graph's dependency order; deletes
    come in reverse dependency order of the previous graph.
    """
    old = {node.id: node for node in topological_sort(previous)}
    diff = GraphDiff()

    for node in topological_sort(current):
        before = old.get(node.id)
        if before is None:
            diff.create.append(node)
        elif before.to_dict() != node.to_dict():
            diff.update.append(node)
        else:
            diff.unchanged.append(node)

    current_ids = {node.id for node in diff.create + diff.update + diff.unchanged}
    diff.delete = [node for node in reversed(list(old.values())) if node.id not in current_ids]
    return diff


def dump_graph(nodes: Iterable[ResourceNode]) -> str:
    """Canonical JSON form of a graph; identical graphs give identical bytes."""
    return json.dumps(
        [node.to_dict() for node in nodes],
        sort_keys=True,
        separators=(",", ":"),
    )


def load_graph(data: str) -> list[ResourceNode]:
    return [ResourceNode.from_dict(item) for item in json.loads(data)]


def render_manifests(nodes: Iterable[ResourceNode]) -> str:
    """Multi-document YAML of the Kubernetes objects in a graph.

    Nodes that are not Kubernetes objects (e.g. DNS records) are skipped.
    """
    documents = [node.payload for node in nodes if "apiVersion" in node.payload]
    return yaml.safe_dump_all(documents, sort_keys=False, default_flow_style=False)
