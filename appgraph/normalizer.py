"""Validation and defaulting of user-supplied AppSpecs."""

import logging
import re
from collections.abc import Mapping
from typing import Any, Optional, Union

import pydantic

from appgraph.auth import SIDECAR_PORT
from appgraph.context import InfraContext
from appgraph.errors import ConfigurationError, ValidationError
from appgraph.models import (
    AppSpec,
    AuthMode,
    AuthSpec,
    OAuthProvider,
    ResolvedAppSpec,
    ResolvedAuth,
    ResolvedStorage,
    ResourceQuantities,
    SecurityContextSpec,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 63
# Service names must start with a letter (DNS-1035)
NAME_PATTERN = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")
SECRET_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
HOST_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)+$")
ENV_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_REQUESTS = {"cpu": "100m", "memory": "128Mi"}
DEFAULT_LIMITS = {"cpu": "500m", "memory": "512Mi"}


# Stand-ins for required fields that failed to parse, so the remaining checks
# still run; the parse failure itself is already reported
PARSE_PLACEHOLDERS = {"name": "unparsed", "image": "unparsed", "port": 80}


def _parse(spec: Union[AppSpec, Mapping[str, Any]]) -> tuple[AppSpec, list[str]]:
    """Parse an AppSpec, returning the fields that parsed and the violations of those that did not."""
    if isinstance(spec, AppSpec):
        return spec, []

    raw = dict(spec)
    try:
        return AppSpec.model_validate(raw), []
    except pydantic.ValidationError as e:
        violations = [
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in e.errors()
        ]
        broken = {error["loc"][0] for error in e.errors() if error["loc"]}

    partial = {
        key: value
        for key, value in raw.items()
        if key in AppSpec.model_fields and key not in broken
    }
    for key, value in PARSE_PLACEHOLDERS.items():
        partial.setdefault(key, value)
    return AppSpec.model_validate(partial), violations


def _quantities(given: Optional[ResourceQuantities], defaults: dict[str, str]) -> tuple:
    values = dict(defaults)
    if given is not None:
        values.update({k: v for k, v in given.model_dump().items() if v})
    return tuple(sorted(values.items()))


def _check_auth(spec: AppSpec, auth: AuthSpec, violations: list[str]) -> None:
    if auth.mode != AuthMode.SIDECAR:
        return

    if auth.provider is None:
        violations.append("auth.provider: required when auth.mode is 'sidecar'")
    if not auth.credentials_ref:
        violations.append("auth.credentials_ref: provider credentials are required for 'sidecar'")
    if auth.provider == OAuthProvider.OIDC and not auth.oidc_issuer_url:
        violations.append("auth.oidc_issuer_url: required for the 'oidc' provider")
    if auth.allowed_orgs and auth.provider != OAuthProvider.GITHUB:
        violations.append("auth.allowed_orgs: organization predicates need the 'github' provider")
    if not (auth.allowed_emails or auth.allowed_domains or auth.allowed_orgs):
        violations.append(
            "auth: at least one of allowed_emails, allowed_domains or allowed_orgs is required"
        )
    for email in auth.allowed_emails:
        if "@" not in email:
            violations.append(f"auth.allowed_emails: '{email}' is not an email address")
    if spec.port == SIDECAR_PORT:
        violations.append(f"port: {SIDECAR_PORT} is reserved for the authentication sidecar")


def normalize(spec: Union[AppSpec, Mapping[str, Any]], context: InfraContext) -> ResolvedAppSpec:
    """Validate an AppSpec and fill in defaults.

    Every violated constraint is collected before raising, so the caller sees
    the complete list in one round trip.

    Raises:
        ValidationError: the AppSpec is malformed (may also list capability problems)
        ConfigurationError: the AppSpec is well-formed but asks for something the
            context cannot provide
    """
    app, violations = _parse(spec)
    capability: list[str] = []

    if len(app.name) > MAX_NAME_LENGTH:
        violations.append(f"name: must be at most {MAX_NAME_LENGTH} characters")
    if not NAME_PATTERN.match(app.name):
        violations.append(
            f"name: '{app.name}' must start with a letter and hold only lowercase "
            "alphanumerics and hyphens"
        )
    if not app.image.strip():
        violations.append("image: must not be empty")
    if not 1 <= app.port <= 65535:
        violations.append(f"port: {app.port} is outside 1-65535")
    if app.replica_count is not None and app.replica_count < 0:
        violations.append(f"replica_count: {app.replica_count} must be >= 0")
    if app.host is not None and not HOST_PATTERN.match(app.host):
        violations.append(f"host: '{app.host}' is not a valid DNS name")

    seen_env: set[str] = set()
    for var in app.env:
        if not ENV_NAME_PATTERN.match(var.name):
            violations.append(f"env: '{var.name}' is not a valid variable name")
        if var.name in seen_env:
            violations.append(f"env: '{var.name}' is defined more than once")
        seen_env.add(var.name)

    for ref in app.image_pull_secret_refs:
        if not SECRET_NAME_PATTERN.match(ref):
            violations.append(f"image_pull_secret_refs: '{ref}' is not a valid secret name")

    storage = None
    if app.storage is not None:
        if not app.storage.size:
            violations.append("storage.size: required when storage is present")
        if not app.storage.mount_path.startswith("/"):
            violations.append(f"storage.mount_path: '{app.storage.mount_path}' must be absolute")
        storage = ResolvedStorage(
            size=app.storage.size or "",
            policy=app.storage.policy,
            mount_path=app.storage.mount_path,
        )

    auth_spec = app.auth or AuthSpec()
    _check_auth(app, auth_spec, violations)
    if auth_spec.mode == AuthMode.FORWARD and not context.has_forward_auth:
        capability.append("auth.mode: 'forward' requires a forward-auth verify endpoint in the context")

    if violations:
        name = app.name if isinstance(spec, AppSpec) else str(spec.get("name") or "<unnamed>")
        raise ValidationError(name, violations + capability)
    if capability:
        raise ConfigurationError(app.name, capability)

    security = app.security_context or SecurityContextSpec()
    resolved = ResolvedAppSpec(
        name=app.name,
        image=app.image,
        port=app.port,
        host=app.host or context.host_for(app.name),
        replica_count=1 if app.replica_count is None else app.replica_count,
        requests=_quantities(app.resource_request, DEFAULT_REQUESTS),
        limits=_quantities(app.resource_limit, DEFAULT_LIMITS),
        env=tuple((var.name, var.value) for var in app.env),
        image_pull_secret_refs=tuple(dict.fromkeys(app.image_pull_secret_refs)),
        storage=storage,
        auth=ResolvedAuth(
            mode=auth_spec.mode,
            provider=auth_spec.provider,
            credentials_ref=auth_spec.credentials_ref,
            oidc_issuer_url=auth_spec.oidc_issuer_url,
            allowed_emails=tuple(sorted(set(auth_spec.allowed_emails))),
            allowed_domains=tuple(sorted(set(auth_spec.allowed_domains))),
            allowed_orgs=tuple(sorted(set(auth_spec.allowed_orgs))),
        ),
        run_as_user=security.run_as_user,
        run_as_group=security.run_as_group,
        fs_group=security.fs_group,
        tags=tuple(sorted(set(app.tags))),
    )
    logger.debug("Normalized AppSpec %s (auth=%s)", resolved.name, resolved.auth.mode.value)
    return resolved
