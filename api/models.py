"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from appgraph.graph import GraphDiff, ResourceNode
from appgraph.storage import StorageBinding


# =============================================================================
# GRAPH MODELS
# =============================================================================


class NodeModel(BaseModel):
    """One node of a compiled resource graph."""

    id: str
    kind: str
    name: str
    namespace: str
    api_version: str
    depends_on: list[str] = Field(default_factory=list)
    priority: int
    skip_readiness: bool = False
    payload: dict[str, Any]

    @classmethod
    def from_node(cls, node: ResourceNode) -> "NodeModel":
        return cls(**node.to_dict())


class StorageBindingModel(BaseModel):
    """Storage class, retention and backup target chosen for a claim."""

    storage_class: str
    reclaim_policy: str
    backup_enabled: bool
    backup_target: Optional[str] = None

    @classmethod
    def from_binding(cls, binding: StorageBinding) -> "StorageBindingModel":
        return cls(
            storage_class=binding.storage_class,
            reclaim_policy=binding.reclaim_policy.value,
            backup_enabled=binding.backup_enabled,
            backup_target=binding.backup_target,
        )


class DiffModel(BaseModel):
    """Node ids to create, update and delete, in apply order."""

    create: list[str] = Field(default_factory=list)
    update: list[str] = Field(default_factory=list)
    delete: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)

    @classmethod
    def from_diff(cls, diff: GraphDiff) -> "DiffModel":
        return cls(**diff.summary())


# =============================================================================
# RESPONSES
# =============================================================================


class CompileResponse(BaseModel):
    """Result of compiling an AppSpec."""

    app_name: str
    auth_mode: str
    storage: Optional[StorageBindingModel] = None
    nodes: list[NodeModel]
    diff: Optional[DiffModel] = None


class SnapshotResponse(BaseModel):
    """Last recorded graph of an application."""

    app_name: str
    nodes: list[NodeModel]
    created_at: datetime
    updated_at: datetime


class TeardownResponse(BaseModel):
    """Deletion order for an application's graph."""

    app_name: str
    delete: list[str]
    message: str
