"""Pydantic models describing an application to expose, and its resolved form."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================


class AuthMode(str, Enum):
    """How requests to the application are authenticated."""

    NONE = "none"
    SIDECAR = "sidecar"
    FORWARD = "forward"


class StoragePolicy(str, Enum):
    """Intent of a persistent volume."""

    PERSISTENT = "persistent"
    UNCRITICAL = "uncritical"


class OAuthProvider(str, Enum):
    """Identity providers supported by the sidecar proxy."""

    GOOGLE = "google"
    GITHUB = "github"
    OIDC = "oidc"


# =============================================================================
# APPSPEC MODELS
# =============================================================================


class EnvVar(BaseModel):
    """Plain environment variable for the application container."""

    name: str
    value: str = ""


class ResourceQuantities(BaseModel):
    """CPU and memory quantities in Kubernetes notation."""

    cpu: Optional[str] = None
    memory: Optional[str] = None


class SecurityContextSpec(BaseModel):
    """Pod-level user and group ids."""

    run_as_user: int = 1000
    run_as_group: int = 1000
    fs_group: int = 1000


class StorageSpec(BaseModel):
    """Persistent volume requested by the application."""

    size: Optional[str] = Field(default=None, description="Requested size, e.g. '1Gi'")
    policy: StoragePolicy = Field(default=StoragePolicy.PERSISTENT)
    mount_path: str = Field(default="/data")


class AuthSpec(BaseModel):
    """Access-control mode and, for the sidecar mode, its provider settings."""

    mode: AuthMode = Field(default=AuthMode.NONE)

    # Sidecar only
    provider: Optional[OAuthProvider] = None
    credentials_ref: Optional[str] = Field(
        default=None,
        description="Secrets broker key prefix holding clientId, clientSecret and cookieSecret",
    )
    oidc_issuer_url: Optional[str] = None
    allowed_emails: list[str] = Field(default_factory=list)
    allowed_domains: list[str] = Field(default_factory=list)
    allowed_orgs: list[str] = Field(default_factory=list)


class AppSpec(BaseModel):
    """Declarative description of one application to expose."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Unique lowercase-hyphenated identity")
    image: str = Field(..., description="Container image reference")
    port: int = Field(..., description="Container listen port")
    host: Optional[str] = Field(default=None, description="Public host (defaults to <name>.<domain>)")
    replica_count: Optional[int] = Field(default=None)
    resource_request: Optional[ResourceQuantities] = None
    resource_limit: Optional[ResourceQuantities] = None
    env: list[EnvVar] = Field(default_factory=list)
    image_pull_secret_refs: list[str] = Field(default_factory=list)
    storage: Optional[StorageSpec] = None
    auth: Optional[AuthSpec] = None
    security_context: Optional[SecurityContextSpec] = None
    tags: list[str] = Field(default_factory=list)


# =============================================================================
# RESOLVED FORM
# =============================================================================


@dataclass(frozen=True)
class ResolvedStorage:
    size: str
    policy: StoragePolicy
    mount_path: str


@dataclass(frozen=True)
class ResolvedAuth:
    mode: AuthMode
    provider: Optional[OAuthProvider] = None
    credentials_ref: Optional[str] = None
    oidc_issuer_url: Optional[str] = None
    allowed_emails: tuple[str, ...] = ()
    allowed_domains: tuple[str, ...] = ()
    allowed_orgs: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedAppSpec:
    """AppSpec after validation and defaulting. Immutable."""

    name: str
    image: str
    port: int
    host: str
    replica_count: int
    requests: tuple[tuple[str, str], ...]
    limits: tuple[tuple[str, str], ...]
    env: tuple[tuple[str, str], ...]
    image_pull_secret_refs: tuple[str, ...]
    storage: Optional[ResolvedStorage]
    auth: ResolvedAuth
    run_as_user: int
    run_as_group: int
    fs_group: int
    tags: tuple[str, ...]

    @property
    def namespace(self) -> str:
        return self.name
