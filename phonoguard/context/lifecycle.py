"""
Foreground/background transitions for phonoguard.

The host app reports OS lifecycle changes through ``handle_state_change``.
Going to the background runs every registered cleanup task; these only touch
transient caches, never persisted security state, so they are safe to run
while other engine operations are still in flight. Coming back to the
foreground runs the foreground hooks, which the engine uses to re-validate
the session.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Union

logger = logging.getLogger(__name__)


class AppState(Enum):
    """Application lifecycle states reported by the host OS."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


Task = Callable[[], Union[None, Awaitable[None]]]
Listener = Callable[[AppState], Union[None, Awaitable[None]]]


@dataclass
class _RegisteredTask:
    name: str
    func: Task
    once: bool = False


async def _run(func: Callable[..., object], *args: object) -> None:
    result = func(*args)
    if inspect.isawaitable(result):
        await result


class AppLifecycle:
    """
    Tracks the app state and runs cleanup on backgrounding.

    Tasks, hooks and listeners may be plain functions or coroutine
    functions. A failing task is logged and does not stop the others.

    Example:
        >>> lifecycle = AppLifecycle()
        >>> lifecycle.add_cleanup_task(storage.clear_cache, name="secure-cache")
        >>> await lifecycle.handle_state_change(AppState.BACKGROUND)
    """

    def __init__(self, initial_state: AppState = AppState.ACTIVE) -> None:
        self._state = initial_state
        self._cleanup_tasks: list[_RegisteredTask] = []
        self._foreground_hooks: list[_RegisteredTask] = []
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def is_backgrounded(self) -> bool:
        return self._state == AppState.BACKGROUND

    def is_active(self) -> bool:
        return self._state == AppState.ACTIVE

    def add_cleanup_task(self, task: Task, name: str | None = None, once: bool = False) -> None:
        """
        Register work to run when the app goes to the background.

        Args:
            task: Callable or coroutine function taking no arguments.
            name: Label used in log messages.
            once: Drop the task after its first run.
        """
        label = name or getattr(task, "__name__", repr(task))
        self._cleanup_tasks.append(_RegisteredTask(label, task, once))

    def add_foreground_hook(self, hook: Task, name: str | None = None) -> None:
        """Register work to run when the app returns from the background."""
        label = name or getattr(hook, "__name__", repr(hook))
        self._foreground_hooks.append(_RegisteredTask(label, hook))

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> bool:
        """
        Remove a listener.

        Returns:
            True if the listener was registered.
        """
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    @property
    def cleanup_task_count(self) -> int:
        return len(self._cleanup_tasks)

    async def handle_state_change(self, next_state: AppState) -> None:
        """
        Record a state transition and run the work it triggers.

        Args:
            next_state: The state the app is entering.
        """
        previous = self._state
        self._state = next_state
        logger.debug(f"App state changed: {previous.value} -> {next_state.value}")

        if previous != AppState.BACKGROUND and next_state == AppState.BACKGROUND:
            await self.perform_cleanup()
        elif previous == AppState.BACKGROUND and next_state == AppState.ACTIVE:
            await self._run_all(self._foreground_hooks, "Foreground hook")

        for listener in list(self._listeners):
            try:
                await _run(listener, next_state)
            except Exception as e:
                logger.error(f"Error in app state listener: {e}")

    async def perform_cleanup(self) -> int:
        """
        Run every cleanup task, best effort.

        Returns:
            Number of tasks that completed without error.
        """
        logger.debug(f"Executing {len(self._cleanup_tasks)} cleanup tasks")
        completed = await self._run_all(self._cleanup_tasks, "Cleanup task")
        self._cleanup_tasks = [t for t in self._cleanup_tasks if not t.once]
        return completed

    @staticmethod
    async def _run_all(tasks: list[_RegisteredTask], kind: str) -> int:
        completed = 0
        for task in list(tasks):
            try:
                await _run(task.func)
            except Exception as e:
                logger.error(f"{kind} '{task.name}' failed: {e}")
            else:
                completed += 1
        return completed
