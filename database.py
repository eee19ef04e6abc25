"""
Database module for the Field Task Dispatch Bot.
Handles worker tasks and PM integrations: lookups for the inbound update
processor, optimistic-concurrency saves, and the read queries behind the
PM-facing tracking API.

Uses PostgreSQL exclusively (local or hosted) with connection pooling.
"""
import logging
import uuid
from datetime import datetime, timezone

from psycopg2.extras import Json, RealDictCursor

from db_postgres import get_db_connection
from models import (
    ACTIVE_STATUSES,
    Integration,
    IntegrationSettings,
    IntegrationStats,
    IntegrationWorker,
    LocationTracking,
    WorkerComment,
    WorkerTask,
)
from performance import log_db_timing

logger = logging.getLogger(__name__)

TASK_COLUMNS = """
    task_id, integration_id, worker_chat_id, external_task_id, title, description,
    status, problem_description, location, destination_coords, created_at,
    started_at, completed_at, photo_urls, worker_comments, telegram_message_id,
    location_tracking, version
"""


def init_db():
    """Initialize database tables if they don't exist."""
    conn = _get_db_connection()
    cursor = conn.cursor()
    logger.info("Database connection established successfully")

    try:
        cursor.execute('''
        CREATE TABLE IF NOT EXISTS integrations (
            integration_id TEXT PRIMARY KEY,
            connect_id TEXT UNIQUE,
            name TEXT NOT NULL DEFAULT '',
            platform TEXT NOT NULL DEFAULT 'generic',
            owner_chat_id TEXT NOT NULL,
            is_active BOOLEAN DEFAULT TRUE,
            settings JSONB NOT NULL DEFAULT '{}'::jsonb,
            stats JSONB NOT NULL DEFAULT '{}'::jsonb,
            workers JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
        ''')

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS worker_tasks (
            task_id TEXT PRIMARY KEY,
            integration_id TEXT NOT NULL REFERENCES integrations(integration_id),
            worker_chat_id TEXT NOT NULL,
            external_task_id TEXT,
            title TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'sent',
            problem_description TEXT,
            location TEXT,
            destination_coords JSONB,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            started_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            photo_urls JSONB NOT NULL DEFAULT '[]'::jsonb,
            worker_comments JSONB NOT NULL DEFAULT '[]'::jsonb,
            telegram_message_id BIGINT,
            location_tracking JSONB,
            version INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
        ''')

        cursor.execute('''
        CREATE INDEX IF NOT EXISTS idx_worker_tasks_worker_status
        ON worker_tasks (worker_chat_id, status, created_at DESC)
        ''')
        conn.close()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        conn.close()
        raise


class _PoolAwareConnection:
    """Wrapper around psycopg2 connection that returns to pool on close()"""
    def __init__(self, conn, pool_instance):
        self._conn = conn
        self._pool_instance = pool_instance
        self._returned = False

    def close(self):
        """Close connection by returning it to the pool"""
        if not self._returned:
            self._pool_instance.return_connection(self._conn)
            self._returned = True

    def cursor(self, *args, **kwargs):
        return self._conn.cursor(*args, **kwargs)

    def __getattr__(self, name):
        """Proxy all other attributes to the wrapped connection"""
        return getattr(self._conn, name)


def _get_db_connection():
    """
    Get database connection from pool.
    Automatically returns to pool when conn.close() is called.
    """
    db_conn = get_db_connection()
    return _PoolAwareConnection(db_conn.get_connection(), db_conn)


# ============================================================================
# Row mapping
# ============================================================================

def _task_from_row(row):
    """Build a WorkerTask from a worker_tasks row (dict cursor)."""
    tracking = row.get("location_tracking")
    return WorkerTask(
        task_id=row["task_id"],
        integration_id=row["integration_id"],
        worker_chat_id=row["worker_chat_id"],
        external_task_id=row.get("external_task_id"),
        title=row["title"],
        description=row.get("description"),
        status=row["status"],
        problem_description=row.get("problem_description"),
        location=row.get("location"),
        destination_coords=row.get("destination_coords"),
        created_at=row.get("created_at"),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        photo_urls=list(row.get("photo_urls") or []),
        worker_comments=[WorkerComment.from_dict(c) for c in row.get("worker_comments") or []],
        telegram_message_id=row.get("telegram_message_id"),
        location_tracking=LocationTracking.from_dict(tracking) if tracking else None,
        version=row.get("version") or 0,
    )


def _task_params(task):
    """Column values for a WorkerTask (mutable fields only)."""
    return {
        "status": task.status,
        "problem_description": task.problem_description,
        "started_at": task.started_at,
        "completed_at": task.completed_at,
        "photo_urls": Json(task.photo_urls),
        "worker_comments": Json([c.to_dict() for c in task.worker_comments]),
        "telegram_message_id": task.telegram_message_id,
        "location_tracking": Json(task.location_tracking.to_dict()) if task.location_tracking else None,
    }


def _integration_from_row(row):
    """Build an Integration from an integrations row (dict cursor)."""
    return Integration(
        integration_id=row["integration_id"],
        connect_id=row.get("connect_id"),
        name=row.get("name") or "",
        platform=row.get("platform") or "generic",
        owner_chat_id=row["owner_chat_id"],
        is_active=bool(row.get("is_active", True)),
        settings=IntegrationSettings.from_dict(row.get("settings")),
        stats=IntegrationStats.from_dict(row.get("stats")),
        workers=[
            IntegrationWorker(
                telegram_id=str(w.get("telegram_id", "")),
                external_id=w.get("external_id"),
                external_name=w.get("external_name"),
            )
            for w in row.get("workers") or []
        ],
        created_at=row.get("created_at"),
    )


# ============================================================================
# Worker tasks
# ============================================================================

@log_db_timing
def create_task(task):
    """
    Insert a new worker task.

    Args:
        task (WorkerTask): Task to insert; a task_id is generated when empty

    Returns:
        str: The task id, or None on failure
    """
    conn = _get_db_connection()
    cursor = conn.cursor()

    try:
        task_id = task.task_id or uuid.uuid4().hex
        created_at = task.created_at or datetime.now(timezone.utc)
        params = _task_params(task)
        cursor.execute(
            """
            INSERT INTO worker_tasks (
                task_id, integration_id, worker_chat_id, external_task_id, title,
                description, location, destination_coords, created_at, status,
                problem_description, started_at, completed_at, photo_urls,
                worker_comments, telegram_message_id, location_tracking, version
            ) VALUES (
                %(task_id)s, %(integration_id)s, %(worker_chat_id)s, %(external_task_id)s, %(title)s,
                %(description)s, %(location)s, %(destination_coords)s, %(created_at)s, %(status)s,
                %(problem_description)s, %(started_at)s, %(completed_at)s, %(photo_urls)s,
                %(worker_comments)s, %(telegram_message_id)s, %(location_tracking)s, 0
            )
            """,
            dict(
                params,
                task_id=task_id,
                integration_id=task.integration_id,
                worker_chat_id=str(task.worker_chat_id),
                external_task_id=task.external_task_id,
                title=task.title,
                description=task.description,
                location=task.location,
                destination_coords=Json(task.destination_coords) if task.destination_coords else None,
                created_at=created_at,
            ),
        )
        conn.close()
        task.task_id = task_id
        task.created_at = created_at
        task.version = 0
        logger.info(f"Created task {task_id} for worker {task.worker_chat_id}")
        return task_id
    except Exception as e:
        logger.error(f"Error creating task: {e}")
        conn.close()
        return None


@log_db_timing
def get_task_by_id(task_id):
    """
    Get a worker task by its internal id.

    Returns:
        WorkerTask: The task or None if not found
    """
    conn = _get_db_connection()
    cursor = conn.cursor(cursor_factory=RealDictCursor)

    try:
        cursor.execute(f"SELECT {TASK_COLUMNS} FROM worker_tasks WHERE task_id = %s", (task_id,))
        row = cursor.fetchone()
        conn.close()
        return _task_from_row(row) if row else None
    except Exception as e:
        logger.error(f"Error getting task {task_id}: {e}")
        conn.close()
        return None


@log_db_timing
def find_active_task_for_worker(worker_chat_id):
    """
    Get the most recently created non-terminal task addressed to a worker chat.

    Returns:
        WorkerTask: The active task or None
    """
    conn = _get_db_connection()
    cursor = conn.cursor(cursor_factory=RealDictCursor)

    try:
        cursor.execute(
            f"""
            SELECT {TASK_COLUMNS} FROM worker_tasks
            WHERE worker_chat_id = %s AND status = ANY(%s)
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (str(worker_chat_id), list(ACTIVE_STATUSES)),
        )
        row = cursor.fetchone()
        conn.close()
        return _task_from_row(row) if row else None
    except Exception as e:
        logger.error(f"Error finding active task for worker {worker_chat_id}: {e}")
        conn.close()
        return None


@log_db_timing
def save_task(task):
    """
    Persist the mutable fields of a task with a compare-and-swap on its version.

    Returns:
        bool: True if saved (task.version is bumped), False on version conflict or error
    """
    conn = _get_db_connection()
    cursor = conn.cursor()

    try:
        cursor.execute(
            """
            UPDATE worker_tasks SET
                status = %(status)s,
                problem_description = %(problem_description)s,
                started_at = %(started_at)s,
                completed_at = %(completed_at)s,
                photo_urls = %(photo_urls)s,
                worker_comments = %(worker_comments)s,
                telegram_message_id = %(telegram_message_id)s,
                location_tracking = %(location_tracking)s,
                version = version + 1,
                updated_at = NOW()
            WHERE task_id = %(task_id)s AND version = %(version)s
            """,
            dict(_task_params(task), task_id=task.task_id, version=task.version),
        )
        updated = cursor.rowcount == 1
        conn.close()
        if not updated:
            logger.warning(f"Version conflict saving task {task.task_id} (version {task.version})")
            return False
        task.version += 1
        return True
    except Exception as e:
        logger.error(f"Error saving task {task.task_id}: {e}")
        conn.close()
        return False


@log_db_timing
def find_integration_task(integration_id, task_ref):
    """Get a task of an integration by internal id or external task id."""
    conn = _get_db_connection()
    cursor = conn.cursor(cursor_factory=RealDictCursor)

    try:
        cursor.execute(
            f"""
            SELECT {TASK_COLUMNS} FROM worker_tasks
            WHERE integration_id = %s AND (task_id = %s OR external_task_id = %s)
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (integration_id, task_ref, task_ref),
        )
        row = cursor.fetchone()
        conn.close()
        return _task_from_row(row) if row else None
    except Exception as e:
        logger.error(f"Error finding task {task_ref} for integration {integration_id}: {e}")
        conn.close()
        return None


@log_db_timing
def get_tracked_tasks(integration_id, include_completed=False, limit=50):
    """
    Get tasks of an integration that have a current location.

    Args:
        integration_id (str): Owning integration
        include_completed (bool): Include completed tasks; otherwise only started/problem
        limit (int): Maximum number of tasks, most recently updated first

    Returns:
        list: WorkerTask objects
    """
    conn = _get_db_connection()
    cursor = conn.cursor(cursor_factory=RealDictCursor)

    try:
        query = f"""
            SELECT {TASK_COLUMNS} FROM worker_tasks
            WHERE integration_id = %s
            AND location_tracking -> 'current_location' IS NOT NULL
            AND location_tracking -> 'current_location' != 'null'::jsonb
        """
        params = [integration_id]
        if not include_completed:
            query += " AND status IN ('started', 'problem')"
        query += " ORDER BY updated_at DESC LIMIT %s"
        params.append(limit)

        cursor.execute(query, params)
        tasks = [_task_from_row(row) for row in cursor.fetchall()]
        conn.close()
        return tasks
    except Exception as e:
        logger.error(f"Error getting tracked tasks for integration {integration_id}: {e}")
        conn.close()
        return []


# ============================================================================
# Integrations
# ============================================================================

@log_db_timing
def create_integration(integration):
    """
    Insert a new integration.

    Returns:
        str: The integration id, or None on failure
    """
    conn = _get_db_connection()
    cursor = conn.cursor()

    try:
        integration_id = integration.integration_id or uuid.uuid4().hex
        cursor.execute(
            """
            INSERT INTO integrations (
                integration_id, connect_id, name, platform, owner_chat_id,
                is_active, settings, stats, workers
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                integration_id,
                integration.connect_id,
                integration.name,
                integration.platform,
                str(integration.owner_chat_id),
                integration.is_active,
                Json(vars(integration.settings)),
                Json(vars(integration.stats)),
                Json([vars(w) for w in integration.workers]),
            ),
        )
        conn.close()
        integration.integration_id = integration_id
        logger.info(f"Created integration {integration_id} ({integration.name})")
        return integration_id
    except Exception as e:
        logger.error(f"Error creating integration: {e}")
        conn.close()
        return None


@log_db_timing
def get_integration(integration_id):
    """Get an integration by id, or None."""
    conn = _get_db_connection()
    cursor = conn.cursor(cursor_factory=RealDictCursor)

    try:
        cursor.execute("SELECT * FROM integrations WHERE integration_id = %s", (integration_id,))
        row = cursor.fetchone()
        conn.close()
        return _integration_from_row(row) if row else None
    except Exception as e:
        logger.error(f"Error getting integration {integration_id}: {e}")
        conn.close()
        return None


@log_db_timing
def get_integration_by_connect_id(connect_id):
    """Get an active integration by its public connect id, or None."""
    conn = _get_db_connection()
    cursor = conn.cursor(cursor_factory=RealDictCursor)

    try:
        cursor.execute(
            "SELECT * FROM integrations WHERE connect_id = %s AND is_active = TRUE",
            (connect_id,),
        )
        row = cursor.fetchone()
        conn.close()
        return _integration_from_row(row) if row else None
    except Exception as e:
        logger.error(f"Error getting integration by connect id {connect_id}: {e}")
        conn.close()
        return None


@log_db_timing
def record_integration_completion(integration_id, minutes=None):
    """
    Count one completed task in the stats of an integration.

    The increment and the (previous + minutes) / 2 average are computed from
    the stored value in a single UPDATE, so concurrent completions are not lost.

    Args:
        integration_id (str): Owning integration
        minutes (float): Response time to fold into the average, or None to only count

    Returns:
        IntegrationStats: Stats after the update, or None on failure
    """
    conn = _get_db_connection()
    cursor = conn.cursor(cursor_factory=RealDictCursor)

    try:
        cursor.execute(
            """
            UPDATE integrations SET stats = COALESCE(stats, '{}'::jsonb) || jsonb_build_object(
                'tasks_completed', COALESCE((stats->>'tasks_completed')::int, 0) + 1,
                'avg_response_time_mins', CASE
                    WHEN %(minutes)s::float IS NULL
                        THEN COALESCE((stats->>'avg_response_time_mins')::float, 0)
                    ELSE (COALESCE((stats->>'avg_response_time_mins')::float, 0) + %(minutes)s::float) / 2
                END
            )
            WHERE integration_id = %(integration_id)s
            RETURNING stats
            """,
            {"integration_id": integration_id, "minutes": minutes},
        )
        row = cursor.fetchone()
        conn.close()
        if not row:
            logger.warning(f"Integration {integration_id} not found while recording completion")
            return None
        return IntegrationStats.from_dict(row["stats"])
    except Exception as e:
        logger.error(f"Error recording completion for integration {integration_id}: {e}")
        conn.close()
        return None
