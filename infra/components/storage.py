"""Cluster-wide storage classes and the backup job that selects volumes by label.

Provisioned once per cluster, before any application is compiled. The storage
binder only ever selects classes defined here.
"""

import pulumi
import pulumi_kubernetes as k8s

from appgraph.storage import BACKUP_GROUP, BACKUP_LABEL, STORAGE_CLASSES


class StorageClasses(pulumi.ComponentResource):
    """Longhorn storage classes plus the daily backup recurring job."""

    def __init__(
        self,
        name: str,
        k8s_provider: k8s.Provider,
        longhorn_namespace: str = "longhorn-system",
        backup_retain: int = 7,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("homelab:storage:StorageClasses", name, None, opts)

        k8s_opts = pulumi.ResourceOptions(parent=self, provider=k8s_provider)

        self.classes: dict[str, k8s.storage.v1.StorageClass] = {}
        for policy, spec in STORAGE_CLASSES.items():
            parameters = {
                "numberOfReplicas": "1",
                "staleReplicaTimeout": "30",
                "fromBackup": "",
                "fsType": "ext4",
                "dataLocality": "best-effort",
            }
            if spec.backup_enabled:
                parameters["recurringJobSelector"] = (
                    f'[{{"name":"{BACKUP_GROUP}","isGroup":true}}]'
                )

            self.classes[spec.name] = k8s.storage.v1.StorageClass(
                f"{name}-{spec.name}",
                metadata=k8s.meta.v1.ObjectMetaArgs(
                    name=spec.name,
                    labels={
                        "app.kubernetes.io/name": "longhorn",
                        "app.kubernetes.io/component": "storage",
                        BACKUP_LABEL: "true" if spec.backup_enabled else "false",
                    },
                    annotations={
                        "storageclass.kubernetes.io/is-default-class": "false",
                        "homelab/description": spec.description,
                        "homelab/policy": policy.value,
                    },
                ),
                provisioner="driver.longhorn.io",
                allow_volume_expansion=True,
                reclaim_policy=spec.reclaim_policy.value,
                volume_binding_mode="WaitForFirstConsumer",
                parameters=parameters,
                opts=k8s_opts,
            )

        # One job backs up every volume in the group, whichever app owns it
        self.backup_job = k8s.apiextensions.CustomResource(
            f"{name}-{BACKUP_GROUP}",
            api_version="longhorn.io/v1beta2",
            kind="RecurringJob",
            metadata=k8s.meta.v1.ObjectMetaArgs(
                name=BACKUP_GROUP,
                namespace=longhorn_namespace,
                labels={
                    "app.kubernetes.io/name": "longhorn",
                    "app.kubernetes.io/component": "backup-job",
                },
            ),
            spec={
                "name": BACKUP_GROUP,
                "cron": "0 2 * * *",
                "task": "backup",
                "retain": backup_retain,
                "concurrency": 1,
                "groups": [BACKUP_GROUP],
                "labels": {BACKUP_LABEL: "true"},
            },
            opts=k8s_opts,
        )

        pulumi.log.info(
            f"Storage classes: {', '.join(sorted(self.classes))}; daily backups via '{BACKUP_GROUP}'"
        )

        self.register_outputs({"storage_classes": sorted(self.classes)})
