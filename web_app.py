#!/usr/bin/env python3
"""Dashboard Automation — Web host.

Loads a dashboard (widgets, script, runtime settings) from YAML, runs
its DashboardSession on a single loop thread and exposes it over HTTP:
interactions and telemetry come in as POSTs, widget updates and console
output go out over SSE.

Usage:
    python3 web_app.py                      # dashboard.yaml, port 5000
    python3 web_app.py --demo               # Simulated sensor readings
    python3 web_app.py --config my.yaml --port 8080
"""

__version__ = "1.0.0"

import argparse
import json
import logging
import threading
from concurrent.futures import Future
from typing import Any, Dict

import yaml
from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from config import RuntimeConfig
from core.data_store import DataStore
from core.session import DashboardSession
from core.web_event_bus import WebEventBus

logger = logging.getLogger(__name__)

LOOP_CALL_TIMEOUT = 5.0


def load_dashboard(config_path: str) -> Dict[str, Any]:
    """Read dashboard.yaml: script (inline or script_file), widgets, runtime, context."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    script = data.get("script") or ""
    if not script and data.get("script_file"):
        with open(data["script_file"]) as f:
            script = f.read()

    return {
        "script": script,
        "widgets": data.get("widgets") or [],
        "runtime": data.get("runtime") or {},
        "context": data.get("context") or {},
    }


def on_loop(session: DashboardSession, fn, *args, timeout: float = LOOP_CALL_TIMEOUT):
    """Run fn on the session's loop thread and wait for its result."""
    future: Future = Future()

    def run():
        try:
            future.set_result(fn(*args))
        except Exception as exc:
            future.set_exception(exc)

    session.scheduler.post(run)
    return future.result(timeout=timeout)


def create_app(session: DashboardSession, bus: WebEventBus) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ─── Routes: status ───

    @app.route("/")
    def index():
        return jsonify({
            "name": "dashboard-automation",
            "version": __version__,
            "widgets": len(on_loop(session, session.widgets)),
            "clients": bus.client_count,
        })

    # ─── Routes: widgets ───

    @app.route("/api/widgets")
    def list_widgets():
        return jsonify(on_loop(session, session.widgets))

    @app.route("/api/widgets/<widget_id>")
    def get_widget(widget_id):
        widget = on_loop(session, session.widget, widget_id)
        if widget is None:
            return jsonify({"error": f"Unknown widget: {widget_id}"}), 404
        return jsonify(widget)

    @app.route("/api/widgets/<widget_id>/actions/<action_id>", methods=["POST"])
    def widget_action(widget_id, action_id):
        """Queue a UI interaction (press, valueChange, submit, ...)."""
        if on_loop(session, session.widget, widget_id) is None:
            return jsonify({"error": f"Unknown widget: {widget_id}"}), 404
        parameters = request.get_json(silent=True) or {}
        if not isinstance(parameters, dict):
            return jsonify({"error": "Parameters must be a JSON object"}), 400
        session.interact(widget_id, action_id, parameters)
        return jsonify({"queued": True, "widgetId": widget_id, "actionId": action_id}), 202

    @app.route("/api/widgets/<widget_id>/events/<event>", methods=["POST"])
    def widget_event(widget_id, event):
        """Queue device telemetry for script listeners."""
        body = request.get_json(silent=True)
        value = body.get("value") if isinstance(body, dict) else body
        session.telemetry(widget_id, event, value)
        return jsonify({"queued": True, "widgetId": widget_id, "event": event}), 202

    # ─── Routes: script ───

    @app.route("/api/script", methods=["GET"])
    def get_script():
        return jsonify({"script": session.script or ""})

    @app.route("/api/script", methods=["PUT"])
    def put_script():
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            script = body.get("script")
        else:
            script = request.get_data(as_text=True)
        if not isinstance(script, str):
            return jsonify({"error": "Missing script"}), 400
        session.replace_script(script)
        return jsonify({"queued": True}), 202

    # ─── Routes: console + stream ───

    @app.route("/api/console")
    def console():
        return jsonify(bus.console_history())

    @app.route("/api/config")
    def runtime_config():
        return jsonify(session.config.as_dict())

    @app.route("/api/stream")
    def stream():
        """SSE endpoint streaming widget updates and console lines."""
        def generate():
            for topic, payload in bus.sse_stream():
                if topic == "keepalive":
                    yield ": keepalive\n\n"
                    continue
                try:
                    yield f"event: {topic}\ndata: {json.dumps(payload, default=str)}\n\n"
                except (TypeError, ValueError) as exc:
                    logger.debug("SSE serialize error for %s: %s", topic, exc)

        return Response(
            generate(),
            mimetype="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
                "Connection": "keep-alive",
            },
        )

    return app


def build_session(dashboard: Dict[str, Any], config: RuntimeConfig, bus: WebEventBus) -> DashboardSession:
    data_store = DataStore(config.data_path)
    return DashboardSession(
        dashboard["widgets"],
        dashboard["script"],
        on_widget_update=bus.widget_updated,
        on_console_log=bus.console,
        context=dashboard["context"],
        data_client=data_store,
        on_transform_update=bus.transform_updated,
        config=config,
    )


def main():
    parser = argparse.ArgumentParser(description="Dashboard Automation web host")
    parser.add_argument("--demo", action="store_true", help="Use simulated sensor data")
    parser.add_argument("--port", type=int, default=5000, help="Web server port")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--config", default="dashboard.yaml", help="Dashboard file path")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    logger.info("Dashboard Automation v%s starting", __version__)

    dashboard = load_dashboard(args.config)
    runtime_cfg = dict(dashboard["runtime"])
    if args.demo:
        runtime_cfg["demo"] = True
    config = RuntimeConfig(runtime_cfg)

    bus = WebEventBus(console_history=config.console_history)
    session = build_session(dashboard, config, bus)
    logger.info("Loaded %d widget(s) from %s", len(session.widgets()), args.config)

    # One thread drains the scheduler: all script code runs here
    stop = threading.Event()
    loop = threading.Thread(
        target=session.scheduler.run_forever, args=(stop,), daemon=True, name="dashboard-loop"
    )
    loop.start()

    app = create_app(session, bus)
    logger.info("Dashboard host at http://%s:%d", args.host, args.port)

    try:
        app.run(host=args.host, port=args.port, threaded=True, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        stop.set()
        loop.join(timeout=2.0)
        session.close()
        session.runtime.data_client.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
