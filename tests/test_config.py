"""Tests for kube_ephemeral.config (client settings and execution options)."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from kube_ephemeral.config.loader import (
    CONFIG_ENV_VAR,
    CONFIGURATION_FILE,
    OPTION_FIELDS,
    flatten_bindings,
    load_client_settings,
    options_from_generic_info,
)
from kube_ephemeral.config.models import (
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_KUBECTL_COMMAND,
    DEFAULT_KUBECTL_CONFIG,
    DEFAULT_KUBECTL_KEY,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_INTERVAL,
    ClientSettings,
    ExecutionOptions,
    StreamInterruptPolicy,
)
from kube_ephemeral.errors import InvalidOptionError
from kube_ephemeral.state.models import ExecutionMode


# ── TestClientSettings ───────────────────────────────────────────────


class TestClientSettings:
    def test_defaults(self):
        s = ClientSettings()
        assert s.command == DEFAULT_KUBECTL_COMMAND == "/usr/local/bin/kubectl"
        assert s.config == DEFAULT_KUBECTL_CONFIG == "~/.kube/config"
        assert s.key == DEFAULT_KUBECTL_KEY == "~/.kube/config/id_rsa"

    def test_blank_values_fall_back(self):
        s = ClientSettings.model_validate({"command": "", "config": None, "key": "/k"})
        assert s.command == DEFAULT_KUBECTL_COMMAND
        assert s.config == DEFAULT_KUBECTL_CONFIG
        assert s.key == "/k"

    def test_kubeconfig_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert ClientSettings().kubeconfig_path == tmp_path / ".kube" / "config"

    def test_environment_sets_kubeconfig(self, monkeypatch):
        monkeypatch.setenv("SOME_VAR", "kept")
        env = ClientSettings(config="/etc/kube/admin.conf").environment()
        assert env["KUBECONFIG"] == "/etc/kube/admin.conf"
        assert env["SOME_VAR"] == "kept"


# ── TestLoadClientSettings ───────────────────────────────────────────


class TestLoadClientSettings:
    def test_default_location(self):
        assert CONFIGURATION_FILE == "config/kube_ephemeral.yaml"
        assert CONFIG_ENV_VAR == "KUBE_EPHEMERAL_CONFIG"

    def test_missing_file_uses_defaults(self, tmp_path, caplog):
        with caplog.at_level("INFO"):
            s = load_client_settings(tmp_path / "absent.yaml")
        assert s == ClientSettings()
        assert "Standard values will be used" in caplog.text

    def test_reads_kubectl_section(self, tmp_path):
        cfg = tmp_path / "settings.yaml"
        cfg.write_text(
            "kubectl:\n"
            "  command: /opt/bin/kubectl\n"
            "  config: /srv/kubeconfig\n"
        )
        s = load_client_settings(cfg)
        assert s.command == "/opt/bin/kubectl"
        assert s.config == "/srv/kubeconfig"
        assert s.key == DEFAULT_KUBECTL_KEY

    def test_empty_file(self, tmp_path):
        cfg = tmp_path / "settings.yaml"
        cfg.write_text("")
        assert load_client_settings(cfg) == ClientSettings()

    def test_env_var(self, tmp_path, monkeypatch):
        cfg = tmp_path / "env.yaml"
        cfg.write_text("kubectl:\n  command: kubectl-from-env\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(cfg))
        assert load_client_settings().command == "kubectl-from-env"

    def test_relative_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        (tmp_path / CONFIGURATION_FILE).write_text("kubectl:\n  command: k\n")
        assert load_client_settings().command == "k"

    def test_section_not_mapping(self, tmp_path):
        cfg = tmp_path / "bad.yaml"
        cfg.write_text("kubectl: just-a-string\n")
        with pytest.raises(InvalidOptionError, match="must be a mapping"):
            load_client_settings(cfg)

    def test_shipped_sample_parses(self):
        sample = Path(__file__).resolve().parent.parent / CONFIGURATION_FILE
        s = load_client_settings(sample)
        assert s.command


# ── TestFlattenBindings ──────────────────────────────────────────────


class TestFlattenBindings:
    def test_scalars(self):
        assert flatten_bindings({"a": 1, "b": "x", "c": None}) == {"a": "1", "b": "x", "c": ""}

    def test_mapping(self):
        flat = flatten_bindings({"variables": {"HOST": "h", "PORT": 80}})
        assert flat == {"variables_HOST": "h", "variables_PORT": "80"}

    def test_list(self):
        assert flatten_bindings({"args": ["x", None]}) == {"args_0": "x", "args_1": ""}

    def test_generic_information(self):
        flat = flatten_bindings({"genericInformation": {"K8S_CREATE_ONLY": "true"}})
        assert flat == {"genericInformation_K8S_CREATE_ONLY": "true"}

    def test_one_level_only(self):
        flat = flatten_bindings({"v": {"inner": {"deep": 1}}})
        assert flat == {"v_inner": "{'deep': 1}"}


# ── TestOptionsFromGenericInfo ───────────────────────────────────────


class TestOptionsFromGenericInfo:
    def test_defaults(self):
        opts = options_from_generic_info({})
        assert opts == ExecutionOptions()
        assert opts.mode is ExecutionMode.FULL_CYCLE
        assert opts.stream_logs is True
        assert opts.wait_for_completion is False
        assert opts.resource_to_stream is None
        assert opts.on_stream_interrupt is StreamInterruptPolicy.FATAL
        assert opts.retry_interval == DEFAULT_RETRY_INTERVAL == 1.0
        assert opts.poll_interval == DEFAULT_POLL_INTERVAL
        assert opts.handshake_timeout == DEFAULT_HANDSHAKE_TIMEOUT == 3.0
        assert opts.max_attempts is None
        assert opts.max_duration is None

    @pytest.mark.parametrize(
        "key",
        ["CREATE_ONLY", "K8S_CREATE_ONLY", "genericInformation_K8S_CREATE_ONLY",
         "genericInformation_CREATE_ONLY", "create_only"],
    )
    def test_key_forms(self, key):
        assert options_from_generic_info({key: "true"}).mode is ExecutionMode.CREATE_ONLY

    @pytest.mark.parametrize("value", ["true", "TRUE", " True "])
    def test_true_values(self, value):
        assert options_from_generic_info({"K8S_DELETE_ONLY": value}).delete_only is True

    @pytest.mark.parametrize("value", ["yes", "1", "on", "", "false"])
    def test_only_true_is_true(self, value):
        assert options_from_generic_info({"K8S_DELETE_ONLY": value}).delete_only is False

    def test_stream_logs_false(self):
        assert options_from_generic_info({"K8S_STREAM_LOGS": "false"}).stream_logs is False

    def test_create_only_wins(self, caplog):
        with caplog.at_level("WARNING"):
            opts = options_from_generic_info({"K8S_CREATE_ONLY": "true", "K8S_DELETE_ONLY": "true"})
        assert opts.mode is ExecutionMode.CREATE_ONLY
        assert "CREATE_ONLY takes precedence" in caplog.text

    def test_delete_only_mode(self):
        assert options_from_generic_info({"K8S_DELETE_ONLY": "true"}).mode is ExecutionMode.DELETE_ONLY

    def test_resource_to_stream(self):
        opts = options_from_generic_info({"K8S_RESOURCE_TO_STREAM": "ns/job/n"})
        assert opts.resource_to_stream == "ns/job/n"

    def test_blank_resource_to_stream(self):
        assert options_from_generic_info({"K8S_RESOURCE_TO_STREAM": "  "}).resource_to_stream is None

    @pytest.mark.parametrize("value", ["treat_as_completion", "TREAT-AS-COMPLETION"])
    def test_interrupt_policy(self, value):
        opts = options_from_generic_info({"K8S_ON_STREAM_INTERRUPT": value})
        assert opts.on_stream_interrupt is StreamInterruptPolicy.TREAT_AS_COMPLETION

    def test_numeric_options(self):
        opts = options_from_generic_info({
            "K8S_RETRY_INTERVAL": "0.5",
            "K8S_POLL_INTERVAL": "2",
            "K8S_HANDSHAKE_TIMEOUT": "1",
            "K8S_MAX_ATTEMPTS": "10",
            "K8S_MAX_DURATION": "60",
        })
        assert opts.retry_interval == 0.5
        assert opts.poll_interval == 2.0
        assert opts.handshake_timeout == 1.0
        assert opts.max_attempts == 10
        assert opts.max_duration == 60.0

    def test_blank_limits(self):
        opts = options_from_generic_info({"K8S_MAX_ATTEMPTS": "", "K8S_MAX_DURATION": ""})
        assert opts.max_attempts is None
        assert opts.max_duration is None

    @pytest.mark.parametrize(
        "key,value",
        [
            ("K8S_RETRY_INTERVAL", "soon"),
            ("K8S_MAX_ATTEMPTS", "0"),
            ("K8S_MAX_DURATION", "-1"),
            ("K8S_ON_STREAM_INTERRUPT", "ignore"),
        ],
    )
    def test_invalid_values(self, key, value):
        with pytest.raises(InvalidOptionError):
            options_from_generic_info({key: value})

    def test_unknown_keys_ignored(self):
        assert options_from_generic_info({"variables_HOST": "x", "K8S_COLOR": "blue"}) == ExecutionOptions()

    def test_every_field_mapped(self):
        assert set(OPTION_FIELDS.values()) == set(ExecutionOptions.model_fields)

    def test_options_frozen(self):
        opts = ExecutionOptions()
        with pytest.raises(ValidationError):
            opts.create_only = True
