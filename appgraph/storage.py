"""Storage binder: maps a storage policy to a storage class, retention and backup target."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from appgraph.models import StoragePolicy

BACKUP_LABEL = "homelab/backup-enabled"
BACKUP_TARGET_ANNOTATION = "homelab/backup-target"
BACKUP_GROUP = "backup-daily"


class ReclaimPolicy(str, Enum):
    RETAIN = "Retain"
    DELETE = "Delete"


@dataclass(frozen=True)
class StorageClassSpec:
    """A storage class provisioned once per cluster, out-of-band."""

    name: str
    reclaim_policy: ReclaimPolicy
    backup_enabled: bool
    description: str


# Both intents keep the volume when the claim goes away; only backup
# participation differs, and that is carried by BACKUP_LABEL on the claim.
STORAGE_CLASSES: dict[StoragePolicy, StorageClassSpec] = {
    StoragePolicy.PERSISTENT: StorageClassSpec(
        name="longhorn-persistent",
        reclaim_policy=ReclaimPolicy.RETAIN,
        backup_enabled=True,
        description="Persistent storage with automatic daily backups",
    ),
    StoragePolicy.UNCRITICAL: StorageClassSpec(
        name="longhorn-uncritical",
        reclaim_policy=ReclaimPolicy.RETAIN,
        backup_enabled=False,
        description="Persistent storage without backups",
    ),
}


@dataclass(frozen=True)
class StorageBinding:
    storage_class: str
    reclaim_policy: ReclaimPolicy
    backup_enabled: bool
    backup_target: Optional[str]

    @property
    def labels(self) -> dict[str, str]:
        return {BACKUP_LABEL: "true" if self.backup_enabled else "false"}

    @property
    def annotations(self) -> dict[str, str]:
        if not self.backup_target:
            return {}
        return {BACKUP_TARGET_ANNOTATION: self.backup_target}


def backup_target(parent_bucket: str, namespace: str, app_name: str) -> str:
    """Per-application backup path below the parent bucket."""
    return f"{parent_bucket.rstrip('/')}/{namespace}-{app_name}"


def bind_storage(
    policy: StoragePolicy,
    namespace: str,
    app_name: str,
    parent_bucket: str,
) -> StorageBinding:
    spec = STORAGE_CLASSES[policy]
    return StorageBinding(
        storage_class=spec.name,
        reclaim_policy=spec.reclaim_policy,
        backup_enabled=spec.backup_enabled,
        backup_target=backup_target(parent_bucket, namespace, app_name) if spec.backup_enabled else None,
    )
