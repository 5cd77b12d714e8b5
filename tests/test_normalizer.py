"""Tests for AppSpec validation and defaulting."""

import pytest

from appgraph.errors import ConfigurationError, ValidationError
from appgraph.models import AppSpec, AuthMode, StoragePolicy
from appgraph.normalizer import normalize


def test_defaults(context, basic_spec):
    """Test that omitted fields are filled in."""
    app = normalize(basic_spec, context)

    assert app.replica_count == 1
    assert app.auth.mode == AuthMode.NONE
    assert app.storage is None
    assert app.host == "demo.example.com"
    assert dict(app.requests) == {"cpu": "100m", "memory": "128Mi"}
    assert dict(app.limits) == {"cpu": "500m", "memory": "512Mi"}
    assert (app.run_as_user, app.run_as_group, app.fs_group) == (1000, 1000, 1000)
    assert app.namespace == "demo"


def test_accepts_model_instance(context, basic_spec):
    app = normalize(AppSpec(**basic_spec), context)
    assert app.name == "demo"


def test_partial_resources_keep_defaults(context, basic_spec):
    app = normalize({**basic_spec, "resource_limit": {"memory": "1Gi"}}, context)
    assert dict(app.limits) == {"cpu": "500m", "memory": "1Gi"}


def test_explicit_host(context, basic_spec):
    app = normalize({**basic_spec, "host": "demo.internal.example.com"}, context)
    assert app.host == "demo.internal.example.com"


def test_tags_are_a_set(context, basic_spec):
    app = normalize({**basic_spec, "tags": ["web", "media", "web"]}, context)
    assert app.tags == ("media", "web")


def test_storage_defaults(context, basic_spec):
    app = normalize({**basic_spec, "storage": {"size": "5Gi"}}, context)
    assert app.storage.policy == StoragePolicy.PERSISTENT
    assert app.storage.mount_path == "/data"


def test_reports_every_violation(context):
    """Test that all problems are listed, not just the first."""
    spec = {
        "name": "Bad_Name",
        "image": "nginx",
        "port": 70000,
        "storage": {"policy": "uncritical"},
        "auth": {"mode": "sidecar"},
    }

    with pytest.raises(ValidationError) as exc_info:
        normalize(spec, context)

    violations = exc_info.value.violations
    assert any(v.startswith("name:") for v in violations)
    assert any(v.startswith("port:") for v in violations)
    assert any(v.startswith("storage.size:") for v in violations)
    assert any(v.startswith("auth.provider:") for v in violations)
    assert any(v.startswith("auth.credentials_ref:") for v in violations)
    assert any(v.startswith("auth:") for v in violations)


def test_name_too_long(context, basic_spec):
    with pytest.raises(ValidationError) as exc_info:
        normalize({**basic_spec, "name": "a" * 64}, context)
    assert any("at most 63" in v for v in exc_info.value.violations)


@pytest.mark.parametrize("port", [0, 65536, -1])
def test_port_out_of_range(context, basic_spec, port):
    with pytest.raises(ValidationError):
        normalize({**basic_spec, "port": port}, context)


def test_negative_replicas(context, basic_spec):
    with pytest.raises(ValidationError):
        normalize({**basic_spec, "replica_count": -1}, context)


def test_zero_replicas_allowed(context, basic_spec):
    app = normalize({**basic_spec, "replica_count": 0}, context)
    assert app.replica_count == 0


def test_duplicate_env_names(context, basic_spec):
    spec = {**basic_spec, "env": [{"name": "A", "value": "1"}, {"name": "A", "value": "2"}]}
    with pytest.raises(ValidationError) as exc_info:
        normalize(spec, context)
    assert exc_info.value.violations == ["env: 'A' is defined more than once"]


def test_env_order_preserved(context, basic_spec):
    spec = {**basic_spec, "env": [{"name": "Z", "value": "1"}, {"name": "A", "value": "2"}]}
    assert normalize(spec, context).env == (("Z", "1"), ("A", "2"))


def test_relative_mount_path(context, basic_spec):
    spec = {**basic_spec, "storage": {"size": "1Gi", "mount_path": "data"}}
    with pytest.raises(ValidationError):
        normalize(spec, context)


def test_type_errors_become_violations(context):
    """Test that parse failures are reported in the same error type."""
    with pytest.raises(ValidationError) as exc_info:
        normalize({"name": "demo", "port": "not-a-port"}, context)

    violations = exc_info.value.violations
    assert any(v.startswith("image:") for v in violations)
    assert any(v.startswith("port:") for v in violations)
    assert exc_info.value.app_name == "demo"


def test_type_errors_reported_with_semantic_errors(context):
    """Test that a field failing to parse does not hide problems in the others."""
    spec = {
        "name": "Bad_Name",
        "image": "x",
        "port": "abc",
        "storage": {"policy": "uncritical", "mount_path": "data"},
    }
    with pytest.raises(ValidationError) as exc_info:
        normalize(spec, context)

    violations = exc_info.value.violations
    assert any(v.startswith("name:") and "Bad_Name" in v for v in violations)
    assert len([v for v in violations if v.startswith("port:")]) == 1
    assert any(v.startswith("storage.size:") for v in violations)
    assert any(v.startswith("storage.mount_path:") for v in violations)
    assert exc_info.value.app_name == "Bad_Name"


@pytest.mark.parametrize("name", ["1app", "9", "-app", "app-"])
def test_name_must_start_with_letter(context, basic_spec, name):
    with pytest.raises(ValidationError) as exc_info:
        normalize({**basic_spec, "name": name}, context)
    assert any(v.startswith("name:") for v in exc_info.value.violations)


def test_pull_secret_may_start_with_digit(context, basic_spec):
    app = normalize({**basic_spec, "image_pull_secret_refs": ["1password-pull"]}, context)
    assert app.image_pull_secret_refs == ("1password-pull",)


def test_unknown_fields_rejected(context, basic_spec):
    with pytest.raises(ValidationError):
        normalize({**basic_spec, "replicas": 3}, context)


def test_sidecar_oidc_needs_issuer(context, sidecar_spec):
    spec = {**sidecar_spec, "auth": {**sidecar_spec["auth"], "provider": "oidc"}}
    with pytest.raises(ValidationError) as exc_info:
        normalize(spec, context)
    assert any(v.startswith("auth.oidc_issuer_url:") for v in exc_info.value.violations)


def test_sidecar_orgs_need_github(context, sidecar_spec):
    spec = {**sidecar_spec, "auth": {**sidecar_spec["auth"], "allowed_orgs": ["acme"]}}
    with pytest.raises(ValidationError):
        normalize(spec, context)


def test_sidecar_port_reserved(context, sidecar_spec):
    with pytest.raises(ValidationError) as exc_info:
        normalize({**sidecar_spec, "port": 4180}, context)
    assert any("reserved" in v for v in exc_info.value.violations)


def test_forward_without_endpoint_is_configuration_error(context, forward_spec):
    """Test that a well-formed spec the context cannot serve fails as configuration."""
    with pytest.raises(ConfigurationError):
        normalize(forward_spec, context)


def test_forward_without_endpoint_listed_with_other_violations(context, forward_spec):
    with pytest.raises(ValidationError) as exc_info:
        normalize({**forward_spec, "port": 0}, context)
    assert any(v.startswith("auth.mode:") for v in exc_info.value.violations)


def test_forward_with_endpoint(forward_context, forward_spec):
    app = normalize(forward_spec, forward_context)
    assert app.auth.mode == AuthMode.FORWARD


def test_error_message_lists_violations(context, basic_spec):
    with pytest.raises(ValidationError) as exc_info:
        normalize({**basic_spec, "port": 0}, context)
    assert "port: 0 is outside 1-65535" in str(exc_info.value)
