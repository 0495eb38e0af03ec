"""Settings loading, environment overrides and config -> kernel bridges."""

from __future__ import annotations

import pytest
import yaml

from reimbursement_config import KernelSettings, get_active_config
from reimbursement_config.bridges import build_request_service
from reimbursement_config.loader import (
    ENV_DATABASE_URL,
    ENV_LOG_LEVEL,
    compute_checksum,
    load_yaml_file,
    parse_settings,
)
from reimbursement_config.schema import DEFAULT_DATABASE_URL
from reimbursement_kernel.db.engine import drop_tables, reset_engine
from reimbursement_kernel.domain.authorization import ActorRole
from reimbursement_kernel.domain.workflow import RequestStatus
from reimbursement_kernel.exceptions import ClaimValidationError
from reimbursement_kernel.services.sql_request_store import SqlRequestStore
from tests.factories import make_claim


def _write(tmp_path, data, name="settings.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultSettings:

    def test_shipped_defaults(self):
        settings = get_active_config(environ={})
        assert settings.config_id == "default"
        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.log_level == "INFO"
        assert settings.allocation_max_attempts == 10
        assert settings.strict_claim_types is False
        assert settings.degraded_fallback_enabled is True
        assert settings.echo_sql is False
        assert len(settings.checksum) == 64

    def test_trace_logged(self, captured_logs):
        settings = get_active_config(environ={})
        traces = [r for r in captured_logs() if r["message"] == "REIMBURSEMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["logger"] == "reimbursement_kernel.config"
        assert traces[0]["trace_type"] == "REIMBURSEMENT_CONFIG_TRACE"
        assert traces[0]["checksum"] == settings.checksum
        assert traces[0]["config_id"] == "default"


class TestCustomSettings:

    def test_file_values(self, tmp_path):
        path = _write(tmp_path, {
            "config_id": "staging",
            "database": {"url": "sqlite:///staging.db", "echo_sql": True},
            "logging": {"level": "debug"},
            "allocation": {"max_attempts": 3, "degraded_fallback_enabled": False},
            "claims": {"strict_types": True},
        })
        settings = get_active_config(path, environ={})
        assert settings == KernelSettings(
            database_url="sqlite:///staging.db",
            log_level="DEBUG",
            allocation_max_attempts=3,
            strict_claim_types=True,
            degraded_fallback_enabled=False,
            echo_sql=True,
            config_id="staging",
            checksum=compute_checksum(load_yaml_file(path)),
        )

    def test_missing_sections_take_defaults(self, tmp_path):
        settings = get_active_config(_write(tmp_path, {"config_id": "bare"}), environ={})
        assert settings.allocation_max_attempts == 10
        assert settings.database_url == DEFAULT_DATABASE_URL

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert get_active_config(path, environ={}).config_id == "default"

    def test_checksum_tracks_content(self, tmp_path):
        first = get_active_config(_write(tmp_path, {"config_id": "a"}, "a.yaml"), environ={})
        second = get_active_config(_write(tmp_path, {"config_id": "b"}, "b.yaml"), environ={})
        assert first.checksum != second.checksum
        assert compute_checksum({"x": 1, "y": 2}) == compute_checksum({"y": 2, "x": 1})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml", environ={})


class TestInvalidSettings:

    @pytest.mark.parametrize(
        "data",
        [
            {"surprise": {}},
            {"allocation": {"max_attempts": 0}},
            {"allocation": {"max_attempts": "ten"}},
            {"allocation": {"max_attempts": True}},
            {"claims": {"strict_types": "yes"}},
            {"logging": {"level": "chatty"}},
            {"database": {"url": "  "}},
            {"database": "sqlite:///x.db"},
        ],
    )
    def test_rejected(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)


class TestEnvironmentOverrides:

    def test_overrides_applied(self):
        settings = get_active_config(environ={
            ENV_DATABASE_URL: "postgresql://app@db/reimbursements",
            ENV_LOG_LEVEL: "warning",
        })
        assert settings.database_url == "postgresql://app@db/reimbursements"
        assert settings.log_level == "WARNING"

    def test_blank_overrides_ignored(self):
        settings = get_active_config(environ={ENV_DATABASE_URL: " ", ENV_LOG_LEVEL: ""})
        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.log_level == "INFO"

    def test_bad_level_override(self):
        with pytest.raises(ValueError):
            get_active_config(environ={ENV_LOG_LEVEL: "loud"})


class TestBridges:

    def test_service_uses_settings(self, memory_store, deterministic_clock):
        settings = KernelSettings(strict_claim_types=True, allocation_max_attempts=2)
        service = build_request_service(settings, store=memory_store, clock=deterministic_clock)

        with pytest.raises(ClaimValidationError):
            service.create_request(make_claim(reimbursement_type="Gym membership"))
        assert service.create_request(make_claim()).application_id == "S-NPT-2025-IT-001"

    def test_sql_service_from_settings(self, tmp_path, deterministic_clock):
        settings = KernelSettings(database_url=f"sqlite:///{tmp_path / 'bridge.db'}")
        service = build_request_service(settings, clock=deterministic_clock)
        try:
            assert isinstance(service._store, SqlRequestStore)
            request = service.create_request(make_claim())
            moved = service.transition(
                request.application_id, RequestStatus.UNDER_COORDINATOR, ActorRole.COORDINATOR,
            )
            assert service.get(request.application_id) == moved
        finally:
            drop_tables()
            reset_engine()
