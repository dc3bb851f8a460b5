"""JSON over HTTP front end used by the web page."""

from __future__ import annotations

import json
import logging
from threading import Thread
from typing import List, Optional, Tuple

from flask import Flask, jsonify, request
from werkzeug.serving import BaseWSGIServer, make_server

from .context import AlarmContext
from .errors import ErrorKind
from .storage import Alarm

logger = logging.getLogger(__name__)

ACTIONS = ("stopActiveAlarm", "allOff", "snooze")


def _parse_alarms(context: AlarmContext, items) -> Tuple[List[Tuple[int, Alarm]], Optional[str]]:
    parsed = []
    if not isinstance(items, list):
        return [], "alarms must be a list"
    for item in items:
        if not isinstance(item, dict) or "id" not in item:
            return [], "alarm entries need an id"
        try:
            alarm_id = int(item["id"])
            changes = Alarm.from_dict(item, context.store.template)
        except (TypeError, ValueError) as exc:
            return [], f"alarm {item.get('id')}: {exc}"
        if context.get_alarm(alarm_id) is None:
            return [], f"unknown alarm id {alarm_id}"
        error = context.store.validate(changes)
        if error:
            return [], f"alarm {alarm_id}: {error}"
        parsed.append((alarm_id, changes))
    return parsed, None


def _parse_lights(context: AlarmContext, items) -> Tuple[List[Tuple[int, int]], Optional[str]]:
    parsed = []
    if not isinstance(items, list):
        return [], "lights must be a list"
    known = {light.id for light in context.get_light_control_list()}
    for item in items:
        try:
            light_id = int(item["id"])
            brightness = int(item["brightness"])
        except (KeyError, TypeError, ValueError):
            return [], "light entries need a numeric id and brightness"
        if light_id not in known:
            return [], f"unknown light id {light_id}"
        if not 0 <= brightness <= 100:
            return [], f"light {light_id}: brightness out of range (0...100)"
        parsed.append((light_id, brightness))
    return parsed, None


def _read_document(raw: str):
    data = request.get_json(silent=True)
    if data is None and raw.strip() and not request.get_data():
        # the web page sends the document as the (already decoded) request target with an empty body
        try:
            data = json.loads(raw.strip())
        except ValueError:
            return None
    return data


def create_app(context: AlarmContext) -> Flask:
    app = Flask(__name__)
    app.json.sort_keys = False
    app.url_map.merge_slashes = False

    @app.after_request
    def allow_any_origin(response):
        # the web page is usually opened from a local file
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return response

    @app.route("/", methods=["GET"])
    def get_document():
        return jsonify(context.to_document())

    @app.route("/", methods=["POST"], defaults={"raw": ""})
    @app.route("/<path:raw>", methods=["POST"])
    def post_document(raw):
        data = _read_document(raw)
        if not isinstance(data, dict):
            return jsonify({"error": "request body must be a JSON object"}), 400

        alarms, error = _parse_alarms(context, data.get("alarms", []))
        if error is None:
            lights, error = _parse_lights(context, data.get("lights", []))
        actions = data.get("actions", [])
        if error is None and (not isinstance(actions, list) or any(a not in ACTIONS for a in actions)):
            error = f"actions must be a list of {', '.join(ACTIONS)}"
        if error:
            logger.info("Rejected POST: %s", error)
            return jsonify({"error": error}), 400

        for alarm_id, changes in alarms:
            result = context.store.update_alarm(alarm_id, changes)
            if not result.ok:
                return jsonify({"error": result.message}), 404 if result.kind == ErrorKind.NOT_FOUND else 400
            logger.info("Alarm %s updated via HTTP", alarm_id)
        for light_id, brightness in lights:
            context.controller.set_light_brightness(light_id, brightness)
        for action in actions:
            logger.info("HTTP action %s", action)
            if action == "stopActiveAlarm":
                context.stop_active_alarm()
            elif action == "allOff":
                context.all_off(False)
            elif action == "snooze":
                context.snooze()
        return jsonify({"status": "OK"})

    return app


def start_http_server(context: AlarmContext, host: str, port: int) -> BaseWSGIServer:
    server = make_server(host, port, create_app(context), threaded=True)
    thread = Thread(target=server.serve_forever, name="json-server", daemon=True)
    thread.start()
    logger.info("HTTP JSON server listening on %s:%s", host, port)
    return server
