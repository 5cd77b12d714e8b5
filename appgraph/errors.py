"""Error kinds raised while compiling and applying application graphs."""

from typing import Optional


class AppGraphError(Exception):
    """Base class for all compiler and apply errors."""

    def __init__(self, message: str, violations: Optional[list[str]] = None):
        self.violations = list(violations or [])
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if not self.violations:
            return message
        details = "\n".join(f"  - {violation}" for violation in self.violations)
        return f"{message}\n{details}"


class ValidationError(AppGraphError):
    """The AppSpec is malformed or incomplete."""

    def __init__(self, app_name: str, violations: list[str]):
        self.app_name = app_name
        super().__init__(f"AppSpec '{app_name}' is invalid", violations)


class ConfigurationError(AppGraphError):
    """The AppSpec requests a capability the infrastructure context does not provide."""

    def __init__(self, app_name: str, violations: list[str]):
        self.app_name = app_name
        super().__init__(f"AppSpec '{app_name}' cannot be built with this context", violations)


class GraphError(AppGraphError):
    """A resource graph is not a well-formed DAG."""


class ApplyError(AppGraphError):
    """Submitting a node to the cluster failed."""

    def __init__(self, node_id: object, reason: str):
        self.node_id = node_id
        # Set by the orchestrator: what the failed run applied before stopping
        self.report = None
        super().__init__(f"Failed to apply {node_id}: {reason}")
