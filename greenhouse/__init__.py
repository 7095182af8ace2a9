from __future__ import annotations

import atexit
import contextlib
import dataclasses
import logging
import signal
import threading
from typing import Any

import requests
from flask import Flask, request
from werkzeug.exceptions import HTTPException

from greenhouse.blueprints.api import actions_api, equipment_api, health_api, measurements_api, parameters_api
from greenhouse.config import load_config, setup_logging
from greenhouse.messaging.transport import Transport
from greenhouse.services.equipment_driver import EquipmentDriver


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    start_consumers: bool = False,
    transport: Transport | None = None,
    driver: EquipmentDriver | None = None,
    session: requests.Session | None = None,
) -> Flask:
    config = load_config()
    if config_overrides:
        overrides = {}
        for key, value in config_overrides.items():
            name = key if hasattr(config, key) else key.lower()
            overrides[name] = value
        # replace() re-runs validation on the merged values
        config = dataclasses.replace(config, **overrides)

    # Configure logging early so container startup is visible in the terminal and greenhouse.log.
    setup_logging(
        debug=config.DEBUG,
        level=config.log_level,
        log_dir=config.log_dir if config.log_to_file else None,
    )

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    from greenhouse.services.container import ServiceContainer

    container = ServiceContainer.build(config, transport=transport, driver=driver, session=session)
    flask_app.config["CONTAINER"] = container
    flask_app.teardown_appcontext(container.database.close_db)

    if start_consumers or config.start_consumers:
        container.start_consumers()
        _install_shutdown_hooks(container)

    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        from greenhouse.domain.exceptions import GreenhouseError
        from greenhouse.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, GreenhouseError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context=f"unhandled {request.method} {request.path}")

    flask_app.register_blueprint(health_api)
    if config.runs_environment:
        flask_app.register_blueprint(parameters_api)
        flask_app.register_blueprint(measurements_api)
    if config.runs_control:
        flask_app.register_blueprint(equipment_api)
        flask_app.register_blueprint(actions_api)

    logging.info(
        "Greenhouse app created (role=%s, blueprints=%s)",
        config.service_role,
        ", ".join(sorted(flask_app.blueprints)),
    )
    return flask_app


def _install_shutdown_hooks(container) -> None:
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    atexit.register(_graceful_shutdown, "atexit")
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(OSError, ValueError):
            signal.signal(sig, _signal_handler)
