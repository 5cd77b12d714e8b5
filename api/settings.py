"""Application settings loaded from environment variables or .env file."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from appgraph.context import ForwardAuthEndpoints, InfraContext, RoutingBackend


class Settings(BaseSettings):
    """Application settings.

    These are loaded from APPGRAPH_* environment variables or a .env file.
    The infrastructure fields describe the cluster the service compiles for.
    """

    model_config = SettingsConfigDict(
        env_prefix="APPGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Snapshot storage
    database_url: str = "sqlite:///./appgraph.db"

    # Public DNS / tunnel
    domain: str = "example.com"
    cloudflare_zone_id: str = ""
    tunnel_cname: str = ""

    # TLS and routing
    cluster_issuer: str = "letsencrypt-prod"
    routing_backend: RoutingBackend = RoutingBackend.INGRESS
    ingress_class: str = "nginx"

    # Forward authentication (optional)
    forward_auth_verify_url: str = ""
    forward_auth_signin_url: str = ""

    # Secrets broker and backups
    secret_store: str = "pulumi-esc"
    backup_bucket: str = "s3://homelab-backups@auto"
    environment: str = "dev"

    def to_context(self) -> InfraContext:
        """Build the shared infrastructure context described by these settings."""
        forward_auth = None
        if self.forward_auth_verify_url:
            forward_auth = ForwardAuthEndpoints(
                verify_url=self.forward_auth_verify_url,
                signin_url=self.forward_auth_signin_url,
            )

        return InfraContext(
            domain=self.domain,
            zone_id=self.cloudflare_zone_id,
            tunnel_cname=self.tunnel_cname,
            cluster_issuer=self.cluster_issuer,
            routing_backend=self.routing_backend,
            ingress_class=self.ingress_class,
            forward_auth=forward_auth,
            secret_store=self.secret_store,
            backup_bucket=self.backup_bucket,
            environment=self.environment,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
