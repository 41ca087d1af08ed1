"""
Configuration management for Hatchery.

Non-secret configuration loaded from a YAML file, credentials usually from
environment variables. Environment variables override the YAML file.
"""

import os
from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOME = Path.home() / ".hatchery"


def config_file_path() -> Path:
    """Resolve the YAML config path, honouring HATCHERY_CONFIG_FILE."""
    override = os.environ.get("HATCHERY_CONFIG_FILE", "").strip()
    if override:
        return Path(override).expanduser()
    return DEFAULT_HOME / "config.yaml"


def yaml_config_settings_source() -> dict[str, Any]:
    """Load configuration from YAML file."""
    config_path = config_file_path()
    if config_path.exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    return {}


class ConflictStrategy(StrEnum):
    """What to do when a desired resource name is already taken."""

    FAIL = "fail"
    SUFFIX = "suffix"


class EnvVar(BaseModel):
    """A custom environment variable pushed to the backend and hosting provider."""

    key: str
    value: str
    environments: list[str] = Field(
        default_factory=lambda: ["production", "preview", "development"]
    )


# --- Provider Configuration Models ---


class GitHubConfig(BaseModel):
    """Source-control host configuration."""

    token: str = Field(default="", description="GitHub token (GH_TOKEN scope: repo)")
    org: str = Field(default="", description="Create repositories under this org instead of the user")
    api_url: str = Field(default="https://api.github.com")
    default_branch: str = Field(default="main")
    private: bool = Field(default=True)

    @property
    def resolved_token(self) -> str:
        """Configured token, else GH_TOKEN or GITHUB_TOKEN from the environment."""
        return self.token or os.environ.get("GH_TOKEN", "") or os.environ.get("GITHUB_TOKEN", "")


class BackendConfig(BaseModel):
    """Backend-as-a-service configuration."""

    access_token: str = Field(default="", description="Management API access token")
    api_url: str = Field(default="https://api.convex.dev/v1")
    cloud_domain: str = Field(
        default="convex.cloud",
        description="Deployment domain; the HTTP-actions site URL swaps it for site_domain",
    )
    site_domain: str = Field(default="convex.site")
    cli: list[str] = Field(
        default=["npx", "convex"],
        description="Command prefix for schema/function deploys",
    )
    feature_project_template: str = Field(
        default="{project}-{feature}",
        description="Name of the backend project created for each feature instance",
    )
    region: str = Field(default="")
    web_dir: str = Field(default="apps/web", description="App directory relative to the project root")
    deploy_key_name: str = Field(default="hatchery-deploy-key")
    dashboard_url: str = Field(default="https://dashboard.convex.dev")
    env_vars: list[EnvVar] = Field(default_factory=list)


class HostingConfig(BaseModel):
    """Hosting/deploy provider configuration."""

    token: str = Field(default="", description="Hosting API token")
    team: str = Field(default="", description="Team scope for CLI commands")
    api_url: str = Field(default="https://api.vercel.com")
    cli: str = Field(default="vercel")
    domain: str = Field(default="vercel.app")
    root_directory: str = Field(
        default="apps/web",
        description="Monorepo root directory for git-triggered builds (empty to skip)",
    )
    env_file: str = Field(default=".env.local")
    environments: list[str] = Field(
        default_factory=lambda: ["production", "preview", "development"]
    )
    env_vars: list[EnvVar] = Field(default_factory=list)


class ComputeConfig(BaseModel):
    """Remote compute host configuration."""

    control_host: str = Field(
        default="exe.dev", description="SSH host that accepts instance management commands"
    )
    domain: str = Field(default="exe.xyz", description="Domain instances are published under")
    web_port: int = Field(default=3000)
    setup_script: str = Field(
        default="",
        description="Local path of the feature setup script copied to each instance",
    )
    config_file: str = Field(
        default="",
        description="Local config file pushed to each instance (defaults to the YAML config)",
    )
    remote_home: str = Field(default="/home/exedev")
    ready_timeout_seconds: float = Field(default=120.0)
    ready_interval_seconds: float = Field(default=3.0)
    setup_timeout_seconds: float = Field(default=600.0)
    command_timeout_seconds: float = Field(default=60.0)

    @property
    def setup_script_path(self) -> Path:
        if self.setup_script:
            return Path(self.setup_script).expanduser()
        return DEFAULT_HOME / "feature-setup.sh"

    @property
    def config_file_path(self) -> Path:
        if self.config_file:
            return Path(self.config_file).expanduser()
        return config_file_path()


class StoreConfig(BaseModel):
    """Local record store locations."""

    home: Path = Field(default=DEFAULT_HOME)
    projects_file: str = Field(default="projects.json")
    instances_file: str = Field(default="instances.json")
    confirmations_file: str = Field(default="pending-confirmations.json")

    @property
    def projects_path(self) -> Path:
        return self.home.expanduser() / self.projects_file

    @property
    def instances_path(self) -> Path:
        return self.home.expanduser() / self.instances_file

    @property
    def confirmations_path(self) -> Path:
        return self.home.expanduser() / self.confirmations_file


class PipelineConfig(BaseModel):
    """Provisioning pipeline behaviour."""

    conflict_strategy: ConflictStrategy = Field(default=ConflictStrategy.FAIL)
    alias_timeout_seconds: float = Field(default=120.0)
    alias_interval_seconds: float = Field(default=5.0)
    http_timeout_seconds: float = Field(default=30.0)
    auth_secret_key: str = Field(default="BETTER_AUTH_SECRET")
    manual_env_keys: list[str] = Field(
        default_factory=lambda: ["RESEND_API_KEY", "AI_GATEWAY_API_KEY"],
        description="Keys the operator must add to the hosting env by hand",
    )
    commit_message: str = Field(
        default="chore: configure project setup\n\n"
        "- Add hosting project configuration\n- Configure environment files"
    )


class ConfirmationConfig(BaseModel):
    """Confirmation gate timings for destructive commands."""

    ttl_seconds: int = Field(default=300)
    min_age_seconds: int = Field(default=10)


# --- Main Settings ---


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="HATCHERY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="hatchery")
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False, description="JSON logging (for CI and agents)")

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    hosting: HostingConfig = Field(default_factory=HostingConfig)
    compute: ComputeConfig = Field(default_factory=ComputeConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Customize settings sources: env vars override YAML config."""
        return (
            init_settings,
            env_settings,
            yaml_config_settings_source,
            dotenv_settings,
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
