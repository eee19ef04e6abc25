from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List


# Task statuses
STATUS_SENT = "sent"
STATUS_SEEN = "seen"
STATUS_STARTED = "started"
STATUS_PROBLEM = "problem"
STATUS_COMPLETED = "completed"

ACTIVE_STATUSES = (STATUS_SENT, STATUS_SEEN, STATUS_STARTED, STATUS_PROBLEM)
ALL_STATUSES = ACTIVE_STATUSES + (STATUS_COMPLETED,)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class LocationPoint:
    lat: float
    lng: float
    timestamp: datetime
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "accuracy": self.accuracy,
            "speed": self.speed,
            "heading": self.heading,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocationPoint":
        return cls(
            lat=data["lat"],
            lng=data["lng"],
            timestamp=_parse_dt(data["timestamp"]),
            accuracy=data.get("accuracy"),
            speed=data.get("speed"),
            heading=data.get("heading"),
        )


@dataclass
class LocationTracking:
    enabled: bool = False
    current_location: Optional[LocationPoint] = None
    history: List[LocationPoint] = field(default_factory=list)
    total_distance_meters: float = 0.0
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    last_webhook_sent_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "current_location": self.current_location.to_dict() if self.current_location else None,
            "history": [point.to_dict() for point in self.history],
            "total_distance_meters": self.total_distance_meters,
            "started_at": _iso(self.started_at),
            "stopped_at": _iso(self.stopped_at),
            "last_webhook_sent_at": _iso(self.last_webhook_sent_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocationTracking":
        current = data.get("current_location")
        return cls(
            enabled=bool(data.get("enabled", False)),
            current_location=LocationPoint.from_dict(current) if current else None,
            history=[LocationPoint.from_dict(p) for p in data.get("history") or []],
            total_distance_meters=float(data.get("total_distance_meters") or 0.0),
            started_at=_parse_dt(data.get("started_at")),
            stopped_at=_parse_dt(data.get("stopped_at")),
            last_webhook_sent_at=_parse_dt(data.get("last_webhook_sent_at")),
        )


@dataclass(frozen=True)
class WorkerComment:
    message: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {"message": self.message, "timestamp": _iso(self.timestamp)}

    @classmethod
    def from_dict(cls, data: dict) -> "WorkerComment":
        return cls(message=data["message"], timestamp=_parse_dt(data["timestamp"]))


@dataclass
class WorkerTask:
    task_id: str
    integration_id: str
    worker_chat_id: str
    title: str
    status: str = STATUS_SENT
    description: Optional[str] = None
    external_task_id: Optional[str] = None
    problem_description: Optional[str] = None
    location: Optional[str] = None
    destination_coords: Optional[dict] = None
    created_at: datetime = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    photo_urls: List[str] = field(default_factory=list)
    worker_comments: List[WorkerComment] = field(default_factory=list)
    telegram_message_id: Optional[int] = None
    location_tracking: Optional[LocationTracking] = None
    version: int = 0

    @property
    def awaiting_problem_description(self) -> bool:
        return self.status == STATUS_PROBLEM and not self.problem_description


@dataclass
class IntegrationSettings:
    notify_on_problem: bool = True
    location_webhook_url: Optional[str] = None
    enable_location_tracking: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "IntegrationSettings":
        data = data or {}
        return cls(
            notify_on_problem=data.get("notify_on_problem", True),
            location_webhook_url=data.get("location_webhook_url") or None,
            enable_location_tracking=data.get("enable_location_tracking", False),
        )


@dataclass
class IntegrationStats:
    tasks_completed: int = 0
    avg_response_time_mins: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "IntegrationStats":
        data = data or {}
        return cls(
            tasks_completed=int(data.get("tasks_completed", 0)),
            avg_response_time_mins=float(data.get("avg_response_time_mins", 0.0)),
        )


@dataclass
class IntegrationWorker:
    telegram_id: str
    external_id: Optional[str] = None
    external_name: Optional[str] = None


@dataclass
class Integration:
    integration_id: str
    owner_chat_id: str
    connect_id: Optional[str] = None
    name: str = ""
    platform: str = "generic"
    is_active: bool = True
    settings: IntegrationSettings = field(default_factory=IntegrationSettings)
    stats: IntegrationStats = field(default_factory=IntegrationStats)
    workers: List[IntegrationWorker] = field(default_factory=list)
    created_at: datetime = None
