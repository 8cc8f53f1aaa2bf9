from __future__ import annotations

from collections.abc import Awaitable, Callable

from .listener.event_source_task import run_event_source_task as listener__run_event_source_task
from .listener.single_tick_task import run_single_tick_task as listener__run_single_tick_task
from .cursor.cursor_tasks import show_cursor_task as cursor__show_cursor_task
from .cursor.cursor_tasks import set_cursor_task as cursor__set_cursor_task

TaskFn = Callable[..., Awaitable[None]]

TASKS: dict[str, TaskFn] = {
    "listener__run_event_source_task": listener__run_event_source_task,
    "listener__run_single_tick_task": listener__run_single_tick_task,
    "cursor__show_cursor_task": cursor__show_cursor_task,
    "cursor__set_cursor_task": cursor__set_cursor_task,
}
