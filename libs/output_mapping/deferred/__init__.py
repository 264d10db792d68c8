"""Deferred load tasks and the queue that drives them."""

from .load_table_task import LoadTableTask, TaskState
from .load_table_queue import LoadTableQueue

__all__ = ["LoadTableTask", "TaskState", "LoadTableQueue"]
