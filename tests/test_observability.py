"""
Tests for observability — logging setup and health checks.
"""

import logging

from runtimectl.core.observability.health import (
    ComponentHealth,
    SystemHealth,
    check_circuit_breakers,
    check_runtime,
)
from runtimectl.core.observability.logging_config import resolve_level, setup_logging
from runtimectl.core.reliability.circuit_breaker import CircuitBreakerRegistry
from runtimectl.core.services.runtime.kinds import NODE, PHP

# ── Logging ──────────────────────────────────────────────────────────


class TestLogging:
    def test_resolve_level_flags(self, monkeypatch):
        monkeypatch.delenv("RUNTIMECTL_LOG_LEVEL", raising=False)
        assert resolve_level(debug=True, quiet=True) == "DEBUG"
        assert resolve_level(verbose=True) == "INFO"
        assert resolve_level(quiet=True) == "ERROR"
        assert resolve_level() == "WARNING"

    def test_resolve_level_env(self, monkeypatch):
        monkeypatch.setenv("RUNTIMECTL_LOG_LEVEL", "INFO")
        assert resolve_level() == "INFO"
        assert resolve_level(debug=True) == "DEBUG"

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "runtimectl.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        try:
            logging.getLogger("runtimectl.test").debug("written to file")
            for handler in logging.getLogger().handlers:
                handler.flush()
            assert "written to file" in log_file.read_text()
        finally:
            setup_logging(level="WARNING")

    def test_third_party_quieted(self):
        setup_logging(level="INFO")
        assert logging.getLogger("werkzeug").level == logging.WARNING

    def test_unknown_level_falls_back(self):
        setup_logging(level="LOUD")
        assert logging.getLogger().level == logging.WARNING


# ── Health ───────────────────────────────────────────────────────────


class TestSystemHealth:
    def test_aggregate_worst_status(self):
        health = SystemHealth()
        health.add(ComponentHealth(name="a", status="healthy"))
        assert health.status == "healthy"
        health.add(ComponentHealth(name="b", status="degraded"))
        assert health.status == "degraded"
        health.add(ComponentHealth(name="c", status="unhealthy"))
        assert health.status == "unhealthy"
        assert len(health.to_dict()["components"]) == 3


class TestCheckRuntime:
    def test_required_kind_without_versions(self, php_manager):
        component = check_runtime(php_manager)
        assert component.status == "unhealthy"

    def test_node_without_versions(self, node_manager):
        assert check_runtime(node_manager).status == "unhealthy"

    def test_optional_kind_without_versions(self, make_manager):
        manager = make_manager(NODE.model_copy(update={"required": False}))
        assert check_runtime(manager).status == "healthy"

    def test_healthy_after_install(self, php_manager, releases):
        releases.publish(PHP, "8.3.12")
        php_manager.install("8.3")
        component = check_runtime(php_manager)
        assert component.status == "healthy"
        assert component.details["default"] == "8.3"

    def test_reports_drift(self, php_manager, releases, paths):
        releases.publish(PHP, "8.3.12")
        releases.publish(PHP, "8.4.1")
        php_manager.install("8.3")
        php_manager.install("8.4")
        (paths.bin_dir / "php84").unlink()
        php_manager.probe.update_default_pointer("8.4")

        component = check_runtime(php_manager)

        assert component.status == "degraded"
        assert "missing binaries: 8.4" in component.message
        assert "pointer names 8.4" in component.message

    def test_reports_updates(self, php_manager, releases):
        releases.publish(PHP, "8.3.12")
        php_manager.install("8.3")
        releases.publish(PHP, "8.3.14")
        php_manager.refresh()
        assert check_runtime(php_manager).details["updates"] == {"8.3": "8.3.14"}


class TestCheckCircuitBreakers:
    def test_no_breakers(self):
        assert check_circuit_breakers(CircuitBreakerRegistry()).status == "healthy"

    def test_open_circuit_degrades(self):
        reg = CircuitBreakerRegistry(default_threshold=1)
        reg.get_or_create("binaries.example").record_failure()
        component = check_circuit_breakers(reg)
        assert component.status == "degraded"
        assert "binaries.example" in component.details
