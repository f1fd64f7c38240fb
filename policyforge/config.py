"""
Service configuration for policyforge.

Settings are resolved by pydantic-settings from, in order of precedence,
explicit arguments, environment variables and a YAML file
(``config.yaml`` in the working directory unless a path is given). Keys in
the file may be written in camelCase or snake_case:

    profile: local
    policy:
      templatePath: ./templates/policy.rego.j2
      hotReload: true
    s3:
      bucketName: policies
      policyObjectKey: policies/active.rego
    engine:
      url: http://localhost:8181

Every setting can be overridden with ``POLICYFORGE_<SECTION>_<FIELD>``,
e.g. ``POLICYFORGE_S3_BUCKET_NAME``; the top-level profile uses
``POLICYFORGE_PROFILE`` and the file path ``POLICYFORGE_CONFIG``.
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_snake
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from policyforge.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "POLICYFORGE_"
CONFIG_ENV = f"{ENV_PREFIX}CONFIG"
DEFAULT_CONFIG_FILE = "config.yaml"
LOCAL_PROFILE = "local"
LOCAL_ENDPOINT_URL = "http://localhost:4566"
LOCAL_REGION = "us-east-1"

# File selected by load_config() for the settings being built.
_config_file: ContextVar[Path | None] = ContextVar("policyforge_config_file", default=None)


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PolicyConfig(_Section):
    """
    Policy generation settings.

    Attributes:
        template_path: Template file; None selects the bundled template.
        query_path: Rule queried for decisions.
        key_prefix: Store prefix for authored policies.
        hot_reload: Publish newly authored policies as the active policy.
    """
    template_path: str | None = None
    query_path: str = "data.api.access.allow"
    key_prefix: str = "policies/"
    hot_reload: bool = False


class StoreConfig(_Section):
    """
    S3 policy store settings.

    Attributes:
        bucket_name: Bucket holding policy documents.
        policy_object_key: Key of the active policy loaded at startup.
        profile: "local" targets LocalStack; anything else is an AWS profile
            name (empty uses the default credential chain).
        region: AWS region.
        endpoint_url: Custom endpoint for S3-compatible storage.
        connect_timeout: Connection timeout in seconds.
        read_timeout: Read timeout in seconds.
        max_attempts: Attempts per store operation.
    """
    bucket_name: str = ""
    policy_object_key: str = ""
    profile: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = Field(5.0, gt=0)
    read_timeout: float = Field(30.0, gt=0)
    max_attempts: int = Field(3, ge=1)

    @property
    def is_local(self) -> bool:
        return self.profile == LOCAL_PROFILE

    def resolved_region(self) -> str | None:
        if self.region:
            return self.region
        return LOCAL_REGION if self.is_local else None

    def resolved_endpoint_url(self) -> str | None:
        if self.endpoint_url:
            return self.endpoint_url
        return LOCAL_ENDPOINT_URL if self.is_local else None


class EngineConfig(_Section):
    """Rule engine settings."""
    type: str = "opa"
    url: str = "http://localhost:8181"
    module_id: str = "policyforge"
    timeout: float = Field(5.0, gt=0)
    retry_count: int = Field(3, ge=1)
    retry_delay: float = Field(0.5, ge=0)

    def to_engine_config(self) -> dict[str, Any]:
        """Build the configuration dict handed to EngineFactory."""
        return {
            "opa_url": self.url,
            "module_id": self.module_id,
            "timeout": self.timeout,
            "retry_count": self.retry_count,
            "retry_delay": self.retry_delay,
        }


class ServerConfig(_Section):
    """HTTP server settings."""
    host: str = "0.0.0.0"
    port: int = Field(8080, ge=1, le=65535)
    log_level: str = "INFO"


def _snake_case_sections(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite camelCase section keys so every source merges on field names."""
    return {
        name: {to_snake(key): value for key, value in section.items()}
        if isinstance(section, dict) else section
        for name, section in data.items()
    }


def read_config_file(path: str | Path) -> dict[str, Any]:
    """
    Read a YAML configuration file.

    Raises:
        ConfigurationError: If the file cannot be parsed or is not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(str(path), expected="valid YAML") from e
    except OSError as e:
        raise ConfigurationError(str(path), expected="a readable config file") from e

    if not isinstance(data, dict):
        raise ConfigurationError(str(path), expected="a mapping at the top level", received=type(data).__name__)
    return data


class YamlFileSettingsSource(PydanticBaseSettingsSource):
    """
    Settings source backed by a YAML file.

    The file mirrors ServiceConfig: a top-level ``profile`` plus one mapping
    per section. Empty sections are treated as absent.
    """

    def __init__(self, settings_cls: type[BaseSettings], config_file: Path | None) -> None:
        super().__init__(settings_cls)
        self.config_file = config_file
        self._data = read_config_file(config_file) if config_file is not None else {}

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        data = {
            name: value
            for name, value in self._data.items()
            if name in self.settings_cls.model_fields and value is not None
        }
        return _snake_case_sections(data)


class ServiceConfig(BaseSettings):
    """
    Resolved configuration for the whole service.

    The S3 section is named ``s3`` to match the file and environment
    names and is also available as ``store``.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="_",
        env_nested_max_split=1,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    profile: str = ""
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    s3: StoreConfig = Field(default_factory=StoreConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # init -> environment -> YAML file
        file_settings = YamlFileSettingsSource(settings_cls, _config_file.get())
        return (init_settings, env_settings, file_settings)

    @model_validator(mode="before")
    @classmethod
    def _apply_profile(cls, data: Any) -> Any:
        """Copy the top-level profile into the s3 section unless it sets one."""
        if not isinstance(data, dict) or not data.get("profile"):
            return data
        s3 = data.get("s3")
        if s3 is None:
            return {**data, "s3": {"profile": data["profile"]}}
        if isinstance(s3, dict) and "profile" not in s3:
            return {**data, "s3": {**s3, "profile": data["profile"]}}
        return data

    @property
    def store(self) -> StoreConfig:
        return self.s3

    def check_required(self) -> None:
        """
        Check that required settings are present.

        Raises:
            ConfigurationError: For the first missing setting.
        """
        if not self.store.bucket_name:
            raise ConfigurationError("s3.bucketName", expected="a non-empty bucket name")
        if not self.store.policy_object_key:
            raise ConfigurationError(
                "s3.policyObjectKey", expected="the key of the active policy object"
            )
        if not self.policy.query_path.startswith("data."):
            raise ConfigurationError(
                "policy.queryPath",
                expected="a reference starting with 'data.'",
                received=self.policy.query_path,
            )


def _configuration_error(error: ValidationError) -> ConfigurationError:
    first = error.errors()[0]
    key = ".".join(str(part) for part in first["loc"]) or "config"
    return ConfigurationError(key, expected=first["msg"], received=first.get("input"))


def build_config(raw: dict[str, Any] | None = None) -> ServiceConfig:
    """
    Resolve settings from already-parsed data and the environment.

    Values in ``raw`` take precedence over environment variables.

    Returns:
        The resolved (not yet checked) configuration.

    Raises:
        ConfigurationError: If a value has the wrong type or shape.
    """
    try:
        return ServiceConfig(**_snake_case_sections(raw or {}))
    except ValidationError as e:
        raise _configuration_error(e) from e


def load_config(path: str | Path | None = None) -> ServiceConfig:
    """
    Load, merge and check the service configuration.

    Args:
        path: YAML file. Defaults to ``POLICYFORGE_CONFIG`` or
            ``config.yaml`` in the working directory, which may be absent
            when everything comes from the environment.

    Raises:
        ConfigurationError: If the file is invalid or required settings
            are missing.
    """
    path = path or os.environ.get(CONFIG_ENV)
    if path is not None:
        config_file = Path(path)
    elif Path(DEFAULT_CONFIG_FILE).is_file():
        config_file = Path(DEFAULT_CONFIG_FILE)
    else:
        config_file = None
        logger.info(f"No {DEFAULT_CONFIG_FILE} found, using environment only")

    token = _config_file.set(config_file)
    try:
        config = build_config()
    finally:
        _config_file.reset(token)
    config.check_required()
    return config
