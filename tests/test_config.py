"""Tests for configuration loading."""

from __future__ import annotations

import os

import pytest
from pydantic import ValidationError

from policyforge.config import (
    LOCAL_ENDPOINT_URL,
    ServiceConfig,
    StoreConfig,
    build_config,
    load_config,
    read_config_file,
)
from policyforge.exceptions import ConfigurationError

CONFIG_YAML = """\
profile: local
policy:
  templatePath: ./templates/policy.rego.j2
  hotReload: true
s3:
  bucketName: policies
  policyObjectKey: policies/active.rego
engine:
  url: http://opa:8181
  retry_count: 5
server:
  port: 9090
"""


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch):
    for name in list(os.environ):
        if name.upper().startswith("POLICYFORGE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_yaml_file(self, config_file):
        config = load_config(config_file)

        assert config.policy.template_path == "./templates/policy.rego.j2"
        assert config.policy.hot_reload is True
        assert config.store.bucket_name == "policies"
        assert config.store.policy_object_key == "policies/active.rego"
        assert config.store.profile == "local"
        assert config.engine.url == "http://opa:8181"
        assert config.engine.retry_count == 5
        assert config.server.port == 9090

    def test_defaults(self, config_file):
        config = load_config(config_file)
        assert config.policy.query_path == "data.api.access.allow"
        assert config.policy.key_prefix == "policies/"
        assert config.engine.type == "opa"
        assert config.server.host == "0.0.0.0"

    def test_environment_overrides(self, config_file, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("POLICYFORGE_S3_BUCKET_NAME", "other-bucket")
        monkeypatch.setenv("POLICYFORGE_POLICY_HOT_RELOAD", "false")
        monkeypatch.setenv("POLICYFORGE_SERVER_PORT", "8000")
        monkeypatch.setenv("POLICYFORGE_PROFILE", "prod")

        config = load_config(config_file)

        assert config.store.bucket_name == "other-bucket"
        assert config.store.policy_object_key == "policies/active.rego"
        assert config.policy.hot_reload is False
        assert config.policy.template_path == "./templates/policy.rego.j2"
        assert config.server.port == 8000
        assert config.store.profile == "prod"

    def test_config_path_from_environment(self, config_file, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("POLICYFORGE_CONFIG", str(config_file))
        config = load_config()
        assert config.store.bucket_name == "policies"

    def test_default_file_in_working_directory(self, config_file, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(config_file.parent)
        assert load_config().server.port == 9090

    def test_file_is_not_kept_after_load(self, config_file):
        load_config(config_file)
        assert ServiceConfig().store.bucket_name == ""

    def test_environment_only(self, tmp_path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("POLICYFORGE_S3_BUCKET_NAME", "policies")
        monkeypatch.setenv("POLICYFORGE_S3_POLICY_OBJECT_KEY", "policies/active.rego")

        config = load_config()

        assert config.store.policy_object_key == "policies/active.rego"
        assert config.store.profile == ""

    def test_missing_bucket(self, tmp_path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("POLICYFORGE_S3_POLICY_OBJECT_KEY", "k")
        with pytest.raises(ConfigurationError, match="s3.bucketName"):
            load_config()

    def test_missing_policy_object_key(self, tmp_path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("POLICYFORGE_S3_BUCKET_NAME", "b")
        with pytest.raises(ConfigurationError, match="s3.policyObjectKey"):
            load_config()

    def test_invalid_query_path(self, config_file, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("POLICYFORGE_POLICY_QUERY_PATH", "api.allow")
        with pytest.raises(ConfigurationError, match="policy.queryPath"):
            load_config(config_file)

    def test_invalid_number(self, config_file, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("POLICYFORGE_SERVER_PORT", "eighty")
        with pytest.raises(ConfigurationError, match="server.port") as exc_info:
            load_config(config_file)
        assert exc_info.value.received == "eighty"

    def test_invalid_boolean(self, config_file, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("POLICYFORGE_POLICY_HOT_RELOAD", "maybe")
        with pytest.raises(ConfigurationError, match="policy.hot_reload"):
            load_config(config_file)

    def test_invalid_yaml_value(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  port: 0\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="server.port"):
            load_config(path)


class TestReadConfigFile:
    """Tests for read_config_file()."""

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("s3: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="valid YAML"):
            read_config_file(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            read_config_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="readable"):
            read_config_file(tmp_path / "absent.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert read_config_file(path) == {}


class TestBuildConfig:
    """Tests for build_config()."""

    def test_snake_case_keys(self):
        config = build_config({"s3": {"bucket_name": "b", "policy_object_key": "k"}})
        assert config.store.bucket_name == "b"

    def test_camel_case_keys(self):
        config = build_config({"s3": {"bucketName": "b", "connectTimeout": "2.5"}})
        assert config.store.bucket_name == "b"
        assert config.store.connect_timeout == 2.5

    def test_arguments_win_over_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("POLICYFORGE_S3_BUCKET_NAME", "from-env")
        monkeypatch.setenv("POLICYFORGE_S3_REGION", "eu-west-1")
        config = build_config({"s3": {"bucket_name": "b"}})
        assert config.store.bucket_name == "b"
        assert config.store.region == "eu-west-1"

    def test_top_level_profile(self):
        assert build_config({"profile": "local"}).store.is_local is True

    def test_section_profile_wins(self):
        config = build_config({"profile": "local", "s3": {"profile": "staging"}})
        assert config.store.profile == "staging"

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="s3"):
            build_config({"s3": "policies"})

    def test_config_is_frozen(self):
        config = build_config()
        with pytest.raises(ValidationError):
            config.server.port = 1

    def test_engine_config_dict(self):
        config = build_config({"engine": {"url": "http://opa:8181", "moduleId": "m"}})
        assert config.engine.to_engine_config() == {
            "opa_url": "http://opa:8181",
            "module_id": "m",
            "timeout": 5.0,
            "retry_count": 3,
            "retry_delay": 0.5,
        }

    def test_check_required_accepts_complete_config(self):
        ServiceConfig(s3=StoreConfig(bucket_name="b", policy_object_key="k")).check_required()


class TestStoreConfig:
    """Tests for StoreConfig profile handling."""

    def test_local_profile(self):
        config = StoreConfig(profile="local")
        assert config.is_local is True
        assert config.resolved_region() == "us-east-1"
        assert config.resolved_endpoint_url() == LOCAL_ENDPOINT_URL

    def test_local_profile_overrides(self):
        config = StoreConfig(profile="local", region="eu-west-1", endpoint_url="http://s3:9000")
        assert config.resolved_region() == "eu-west-1"
        assert config.resolved_endpoint_url() == "http://s3:9000"

    def test_aws_profile(self):
        config = StoreConfig(profile="prod")
        assert config.is_local is False
        assert config.resolved_region() is None
        assert config.resolved_endpoint_url() is None
