"""
Async wrapper for database operations.
Wraps synchronous DB calls in asyncio.to_thread() so the update processor
never blocks the event loop while waiting on PostgreSQL.
"""
import asyncio
import logging

logger = logging.getLogger(__name__)


class TaskRepository:
    """
    Task-repository capability used by the update handlers.

    Every method is a non-blocking version of the matching function in the
    database module.
    """

    async def get_task(self, task_id):
        import database
        return await asyncio.to_thread(database.get_task_by_id, task_id)

    async def find_active_task(self, worker_chat_id):
        import database
        return await asyncio.to_thread(database.find_active_task_for_worker, worker_chat_id)

    async def save_task(self, task) -> bool:
        import database
        return await asyncio.to_thread(database.save_task, task)

    async def create_task(self, task):
        import database
        return await asyncio.to_thread(database.create_task, task)

    async def get_integration(self, integration_id):
        import database
        return await asyncio.to_thread(database.get_integration, integration_id)

    async def record_completion(self, integration_id, minutes):
        import database
        return await asyncio.to_thread(database.record_integration_completion, integration_id, minutes)
