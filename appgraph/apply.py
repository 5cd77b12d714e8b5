"""Dependency-ordered submission of a resource graph to a cluster.

The cluster client itself is supplied by the caller. This module only decides
what may be submitted when: a node goes out once every node it depends on has
reported ready, and siblings without an edge between them go out concurrently.
Applying is idempotent and re-enterable, so a cancelled or failed run never
rolls back what was already created.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional

from appgraph.errors import ApplyError
from appgraph.graph import ResourceNode, apply_waves

logger = logging.getLogger(__name__)

Submit = Callable[[ResourceNode], Awaitable[None]]
WaitReady = Callable[[ResourceNode], Awaitable[bool]]


@dataclass
class ApplyReport:
    applied: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    cancelled: bool = False


async def _apply_node(
    node: ResourceNode,
    submit: Submit,
    wait_ready: Optional[WaitReady],
    semaphore: asyncio.Semaphore,
    cancel: Optional[asyncio.Event],
) -> bool:
    async with semaphore:
        if cancel is not None and cancel.is_set():
            return False

        try:
            await submit(node)
        except Exception as e:
            raise ApplyError(node.id, str(e)) from e

        if wait_ready is None or node.skip_readiness:
            return True

        try:
            ready = await wait_ready(node)
        except Exception as e:
            raise ApplyError(node.id, f"readiness check failed: {e}") from e
        if not ready:
            raise ApplyError(node.id, "did not become ready")
        return True


async def apply_graph(
    nodes: Iterable[ResourceNode],
    submit: Submit,
    wait_ready: Optional[WaitReady] = None,
    cancel: Optional[asyncio.Event] = None,
    concurrency: int = 4,
) -> ApplyReport:
    """Create or update every node in dependency order.

    Args:
        nodes: The graph to apply
        submit: Creates or updates one node
        wait_ready: Resolves True once a node is ready (skipped for nodes
            marked skip_readiness)
        cancel: When set, no further node is submitted
        concurrency: Maximum concurrent submissions within one wave

    Raises:
        ApplyError: a submission or readiness check failed; ``report`` on the
            error lists what was applied, what failed and what is still pending
    """
    waves = apply_waves(nodes)
    report = ApplyReport()
    semaphore = asyncio.Semaphore(concurrency)

    for index, wave in enumerate(waves):
        if cancel is not None and cancel.is_set():
            report.cancelled = True
            report.pending = [str(node.id) for later in waves[index:] for node in later]
            logger.info("Apply cancelled with %d nodes pending", len(report.pending))
            return report

        results = await asyncio.gather(
            *(_apply_node(node, submit, wait_ready, semaphore, cancel) for node in wave),
            return_exceptions=True,
        )

        failures = []
        for node, result in zip(wave, results):
            if isinstance(result, BaseException):
                failures.append(result)
                report.failed.append(str(node.id))
            elif result is False:
                report.pending.append(str(node.id))
            else:
                report.applied.append(str(node.id))
                logger.debug("Applied %s", node.id)

        if failures:
            report.pending += [str(node.id) for later in waves[index + 1 :] for node in later]
            logger.info(
                "Apply failed on %s; %d applied, %d pending",
                ", ".join(report.failed),
                len(report.applied),
                len(report.pending),
            )
            error = failures[0]
            if isinstance(error, ApplyError):
                error.report = report
            raise error

        if report.pending:
            report.cancelled = True
            report.pending += [str(node.id) for later in waves[index + 1 :] for node in later]
            logger.info("Apply cancelled with %d nodes pending", len(report.pending))
            return report

    return report
