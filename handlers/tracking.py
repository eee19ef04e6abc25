"""Response shaping for the PM-facing location and tracking read API."""
from utils.geo import haversine_distance

DEFAULT_HISTORY_LIMIT = 100


def _iso(value):
    return value.isoformat() if value else None


def _km(meters) -> str:
    return f"{(meters or 0) / 1000:.2f}"


def build_task_location(task, include_history=False, history_limit=DEFAULT_HISTORY_LIMIT) -> dict:
    """
    Location data for one task.

    Args:
        task: WorkerTask
        include_history: Attach the most recent history points
        history_limit: Number of history points to attach

    Returns:
        dict: Response body under "data"
    """
    tracking = task.location_tracking
    if tracking is None or tracking.current_location is None:
        return {
            "tracking_enabled": bool(tracking and tracking.enabled),
            "has_location": False,
            "message": "No location data available. Worker may not have shared location yet.",
        }

    current = tracking.current_location
    data = {
        "tracking_enabled": tracking.enabled,
        "has_location": True,
        "tracking_started_at": _iso(tracking.started_at),
        "tracking_stopped_at": _iso(tracking.stopped_at),
        "current_location": {
            "lat": current.lat,
            "lng": current.lng,
            "accuracy": current.accuracy,
            "speed": current.speed,
            "heading": current.heading,
            "timestamp": _iso(current.timestamp),
        },
        "total_distance_meters": round(tracking.total_distance_meters, 2),
        "total_distance_km": _km(tracking.total_distance_meters),
        "task_status": task.status,
        "task_started_at": _iso(task.started_at),
        "task_completed_at": _iso(task.completed_at),
    }

    destination = task.destination_coords or {}
    if destination.get("lat") is not None and destination.get("lng") is not None:
        data["destination"] = {
            "lat": destination["lat"],
            "lng": destination["lng"],
            "address": task.location,
        }
        data["distance_to_destination_meters"] = round(
            haversine_distance(current.lat, current.lng, destination["lat"], destination["lng"])
        )

    if include_history and tracking.history:
        points = tracking.history[-history_limit:] if history_limit > 0 else []
        data["history"] = [
            {"lat": p.lat, "lng": p.lng, "timestamp": _iso(p.timestamp), "speed": p.speed}
            for p in points
        ]
        data["history_count"] = len(tracking.history)

    return data


def build_tracking_overview(integration, tasks) -> dict:
    """Tracking listing for an integration, with workers labelled by name."""
    workers = {w.telegram_id: w for w in integration.workers}

    entries = []
    for task in tasks:
        worker = workers.get(task.worker_chat_id)
        tracking = task.location_tracking
        current = tracking.current_location if tracking else None
        destination = task.destination_coords

        entries.append({
            "task_id": task.task_id,
            "external_task_id": task.external_task_id,
            "title": task.title,
            "status": task.status,
            "worker": {
                "telegram_id": task.worker_chat_id,
                "name": (worker.external_name if worker else None) or "Unknown",
                "external_id": worker.external_id if worker else None,
            },
            "tracking": {
                "active": bool(tracking and tracking.enabled),
                "started_at": _iso(tracking.started_at) if tracking else None,
            },
            "location": {
                "lat": current.lat,
                "lng": current.lng,
                "speed": current.speed,
                "heading": current.heading,
                "updated_at": _iso(current.timestamp),
            } if current else None,
            "destination": {
                "lat": destination.get("lat"),
                "lng": destination.get("lng"),
                "address": task.location,
            } if destination else None,
            "distance_traveled_km": _km(tracking.total_distance_meters if tracking else 0),
            "task_started_at": _iso(task.started_at),
            "task_completed_at": _iso(task.completed_at),
        })

    return {
        "integration": {"name": integration.name, "platform": integration.platform},
        "active_tracking_count": sum(1 for entry in entries if entry["tracking"]["active"]),
        "tasks": entries,
    }
