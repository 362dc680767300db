"""
Runtime routes — version listing and lifecycle endpoints.

Blueprint: runtimes_bp
Prefix: /api

Thin HTTP wrappers over ``runtimectl.core.services.runtime``.

Endpoints:
    GET  /runtimes                          — every kind's snapshot
    GET  /runtimes/<kind>                   — one kind: records, progress, catalog
    POST /runtimes/<kind>/refresh           — re-fetch the remote catalog
    POST /runtimes/<kind>/<major>/install   — background install (202)
    POST /runtimes/<kind>/<major>/update    — background update (202)
    POST /runtimes/<kind>/<major>/remove    — remove a non-default major
    POST /runtimes/<kind>/<major>/default   — make a major the default
    GET  /runtimes/<kind>/<major>/config    — managed php.ini settings
    POST /runtimes/<kind>/<major>/config    — change memory / upload limits
    POST /runtimes/<kind>/sync              — reconciliation pass
    GET  /health                            — aggregate health
"""

from __future__ import annotations

import logging
import threading

from flask import Blueprint, abort, current_app, jsonify, request

from runtimectl.core.services.runtime.errors import (
    AnotherOperationInProgress,
    InstallError,
    PreconditionError,
    RuntimeCtlError,
    VersionNotAvailable,
    VersionNotInstalled,
)
from runtimectl.core.services.runtime.manager import RuntimeManager
from runtimectl.core.services.runtime.registry import RuntimeRegistry

logger = logging.getLogger(__name__)

runtimes_bp = Blueprint("runtimes", __name__)


def _registry() -> RuntimeRegistry:
    return current_app.config["RUNTIME_REGISTRY"]


def _manager(kind: str) -> RuntimeManager:
    registry = _registry()
    if kind not in registry:
        abort(404, description=f"Unknown runtime kind: {kind}")
    return registry.get(kind)


def _error_response(error: RuntimeCtlError):  # type: ignore[no-untyped-def]
    if isinstance(error, (VersionNotInstalled, VersionNotAvailable)):
        code = 404
    elif isinstance(error, PreconditionError):
        code = 409
    elif isinstance(error, InstallError):
        code = 502
    else:
        code = 500
    return jsonify({"error": str(error), "type": type(error).__name__}), code


def _start_background(manager: RuntimeManager, operation: str, major: str):  # type: ignore[no-untyped-def]
    if manager.busy:
        return _error_response(AnotherOperationInProgress(manager.label))

    def _run() -> None:
        if operation == "update":
            manager.refresh()
        try:
            getattr(manager, operation)(major)
        except RuntimeCtlError as e:
            # Already recorded in the manager's operation state
            logger.warning("Background %s of %s %s failed: %s", operation, manager.label, major, e)
        except Exception:
            logger.exception("Background %s of %s %s crashed", operation, manager.label, major)

    threading.Thread(
        target=_run,
        name=f"{manager.kind.name}-{operation}-{major}",
        daemon=True,
    ).start()

    return jsonify({
        "accepted": True,
        "kind": manager.kind.name,
        "major": major,
        "operation": operation,
        "poll": f"/api/runtimes/{manager.kind.name}",
    }), 202


# ── Observe ─────────────────────────────────────────────────────────


@runtimes_bp.route("/runtimes")
def runtimes_list():  # type: ignore[no-untyped-def]
    """Snapshot of every configured kind."""
    return jsonify({"runtimes": [manager.snapshot() for manager in _registry()]})


@runtimes_bp.route("/runtimes/<kind>")
def runtime_detail(kind: str):  # type: ignore[no-untyped-def]
    """Records, default, in-flight operations, catalog and updates."""
    return jsonify(_manager(kind).snapshot())


@runtimes_bp.route("/runtimes/<kind>/refresh", methods=["POST"])
def runtime_refresh(kind: str):  # type: ignore[no-untyped-def]
    """Re-fetch the remote catalog."""
    manager = _manager(kind)
    refreshed = manager.refresh()
    return jsonify({"refreshed": refreshed, "catalog_error": manager.catalog_error})


@runtimes_bp.route("/health")
def health():  # type: ignore[no-untyped-def]
    """Aggregate health of every kind and the catalog circuits."""
    from runtimectl.core.observability.health import check_system_health

    return jsonify(check_system_health(_registry()).to_dict())


# ── Act ─────────────────────────────────────────────────────────────


@runtimes_bp.route("/runtimes/<kind>/<major>/install", methods=["POST"])
def runtime_install(kind: str, major: str):  # type: ignore[no-untyped-def]
    """Start installing a major in the background."""
    return _start_background(_manager(kind), "install", major)


@runtimes_bp.route("/runtimes/<kind>/<major>/update", methods=["POST"])
def runtime_update(kind: str, major: str):  # type: ignore[no-untyped-def]
    """Start updating a major in the background."""
    return _start_background(_manager(kind), "update", major)


@runtimes_bp.route("/runtimes/<kind>/<major>/remove", methods=["POST"])
def runtime_remove(kind: str, major: str):  # type: ignore[no-untyped-def]
    """Remove a non-default major."""
    manager = _manager(kind)
    try:
        manager.remove(major)
    except RuntimeCtlError as e:
        return _error_response(e)
    return jsonify({"ok": True, "removed": major, "runtime": manager.snapshot()})


@runtimes_bp.route("/runtimes/<kind>/<major>/default", methods=["POST"])
def runtime_set_default(kind: str, major: str):  # type: ignore[no-untyped-def]
    """Make a major the default."""
    manager = _manager(kind)
    try:
        manager.set_default(major)
    except RuntimeCtlError as e:
        return _error_response(e)
    return jsonify({"ok": True, "default": major, "runtime": manager.snapshot()})


@runtimes_bp.route("/runtimes/<kind>/sync", methods=["POST"])
def runtime_sync(kind: str):  # type: ignore[no-untyped-def]
    """Run a reconciliation pass."""
    manager = _manager(kind)
    try:
        report = manager.sync()
    except RuntimeCtlError as e:
        return _error_response(e)
    return jsonify({"ok": True, "report": report.to_dict()})


# ── Settings ────────────────────────────────────────────────────────


@runtimes_bp.route("/runtimes/<kind>/<major>/config")
def runtime_config(kind: str, major: str):  # type: ignore[no-untyped-def]
    """Managed php.ini settings of an installed major."""
    manager = _manager(kind)
    try:
        settings = manager.read_settings(major)
    except RuntimeCtlError as e:
        return _error_response(e)
    return jsonify(settings.model_dump(mode="json"))


@runtimes_bp.route("/runtimes/<kind>/<major>/config", methods=["POST"])
def runtime_config_update(kind: str, major: str):  # type: ignore[no-untyped-def]
    """Change memory_limit and/or upload_max_filesize (MB)."""
    manager = _manager(kind)
    body = request.get_json(silent=True) or {}
    try:
        changed = manager.update_settings(
            major,
            memory_limit=body.get("memory_limit"),
            upload_max_filesize=body.get("upload_max_filesize"),
        )
        settings = manager.read_settings(major)
    except RuntimeCtlError as e:
        return _error_response(e)
    return jsonify({"ok": True, "changed": changed, "settings": settings.model_dump(mode="json")})
