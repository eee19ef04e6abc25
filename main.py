"""
HTTP entry point.

- POST /api/telegram/webhook  Telegram update delivery (always answers {"ok": true})
- GET  /api/telegram/webhook  health check
- GET  /api/v1/pm-connect/<connect_id>/tasks/<task_ref>/location
- GET  /api/v1/pm-connect/<connect_id>/tracking
"""
import asyncio
import logging

from flask import Flask, jsonify, request

import database
from bot import handle_webhook_update
from config import Config
from handlers.tracking import DEFAULT_HISTORY_LIMIT, build_task_location, build_tracking_overview

logger = logging.getLogger(__name__)

app = Flask(__name__)


@app.route(Config.WEBHOOK_PATH, methods=["POST"])
def telegram_webhook():
    """Receive a Telegram update."""
    payload = request.get_json(silent=True)
    try:
        # Each delivery is processed in its own event loop run
        result = asyncio.run(handle_webhook_update(payload))
    except Exception as e:
        logger.exception("Unhandled error in webhook endpoint: %s", e)
        result = {"ok": True}
    return jsonify(result)


@app.route(Config.WEBHOOK_PATH, methods=["GET"])
def telegram_webhook_health():
    """Webhook health check."""
    return jsonify({"status": "ok", "message": "Telegram webhook endpoint"})


@app.route("/api/v1/pm-connect/<connect_id>/tasks/<task_ref>/location")
def api_task_location(connect_id, task_ref):
    """Location data for a task, looked up by internal or external id."""
    try:
        include_history = request.args.get("history") == "true"
        limit = request.args.get("limit", DEFAULT_HISTORY_LIMIT, type=int)

        integration = database.get_integration_by_connect_id(connect_id)
        if not integration:
            return jsonify({"success": False, "error": "Integration not found"}), 404

        task = database.find_integration_task(integration.integration_id, task_ref)
        if not task:
            return jsonify({"success": False, "error": "Task not found"}), 404

        data = build_task_location(task, include_history=include_history, history_limit=limit)
        return jsonify({"success": True, "data": data})
    except Exception as e:
        logger.exception("Error fetching location: %s", e)
        return jsonify({"success": False, "error": "Failed to fetch location"}), 500


@app.route("/api/v1/pm-connect/<connect_id>/tracking")
def api_tracking(connect_id):
    """Tasks of an integration that currently have location data."""
    try:
        include_completed = request.args.get("completed") == "true"

        integration = database.get_integration_by_connect_id(connect_id)
        if not integration:
            return jsonify({"success": False, "error": "Integration not found"}), 404

        tasks = database.get_tracked_tasks(integration.integration_id, include_completed=include_completed)
        return jsonify({"success": True, "data": build_tracking_overview(integration, tasks)})
    except Exception as e:
        logger.exception("Error fetching tracking data: %s", e)
        return jsonify({"success": False, "error": "Failed to fetch tracking data"}), 500


if __name__ == "__main__":
    database.init_db()
    app.run(host="0.0.0.0", port=Config.PORT, debug=Config.DEBUG)
