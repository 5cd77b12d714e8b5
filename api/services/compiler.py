"""Compile service."""

import logging
from typing import Any, Optional

from api.database import Database, GraphSnapshotRecord
from api.models import (
    CompileResponse,
    DiffModel,
    NodeModel,
    SnapshotResponse,
    StorageBindingModel,
    TeardownResponse,
)
from appgraph.builder import build, storage_binding_for
from appgraph.context import InfraContext
from appgraph.graph import diff_graphs, dump_graph, load_graph
from appgraph.normalizer import normalize

logger = logging.getLogger(__name__)


class CompilerService:
    """Service for compiling AppSpecs and tracking their last recorded graph."""

    def __init__(self, context: InfraContext, database: Database):
        self.context = context
        self.database = database

    def compile(self, spec: dict[str, Any], record: bool = False) -> CompileResponse:
        """Compile a spec; when recording, diff against and replace the stored graph."""
        resolved = normalize(spec, self.context)
        nodes = build(self.context, resolved)
        binding = storage_binding_for(self.context, resolved)

        diff: Optional[DiffModel] = None
        if record:
            snapshot = self.database.get_snapshot(resolved.name)
            previous = load_graph(snapshot.graph) if snapshot else []
            diff = DiffModel.from_diff(diff_graphs(previous, nodes))
            self.database.save_snapshot(resolved.name, resolved.auth.mode.value, dump_graph(nodes))
            logger.info(
                "Recorded %s: %d to create, %d to update, %d to delete",
                resolved.name,
                len(diff.create),
                len(diff.update),
                len(diff.delete),
            )

        return CompileResponse(
            app_name=resolved.name,
            auth_mode=resolved.auth.mode.value,
            storage=StorageBindingModel.from_binding(binding) if binding else None,
            nodes=[NodeModel.from_node(node) for node in nodes],
            diff=diff,
        )

    def get(self, app_name: str) -> Optional[SnapshotResponse]:
        record = self.database.get_snapshot(app_name)
        return self._to_model(record) if record else None

    def list_all(self) -> list[SnapshotResponse]:
        return [self._to_model(record) for record in self.database.list_snapshots()]

    def teardown(self, app_name: str) -> Optional[TeardownResponse]:
        """Plan deletion of a recorded graph and forget it."""
        record = self.database.get_snapshot(app_name)
        if not record:
            return None

        diff = diff_graphs(load_graph(record.graph), [])
        self.database.delete_snapshot(app_name)
        return TeardownResponse(
            app_name=app_name,
            delete=[str(node.id) for node in diff.delete],
            message=f"Graph for '{app_name}' removed; delete nodes in the listed order",
        )

    def _to_model(self, record: GraphSnapshotRecord) -> SnapshotResponse:
        """Convert record to model."""
        return SnapshotResponse(
            app_name=record.app_name,
            nodes=[NodeModel.from_node(node) for node in load_graph(record.graph)],
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
