"""Task lifecycle state machine.

Every transition is a pure function ``(task, ...) -> Task`` returning a new
frozen Task. Nothing here stores tasks: callers that may race on the same
task id must serialize updates themselves (one writer per task, or a
compare-and-swap on ``updatedAt``), since two transitions applied to the
same snapshot will silently lose one.
"""

from __future__ import annotations

import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Union

from .clock import Clock, utc_now
from .errors import IllegalTransitionError, ValidationError
from .identity import Identity
from .types import (
    TERMINAL_STATUSES,
    JSONRPCRequest,
    Message,
    Party,
    Priority,
    RPCId,
    Task,
    TaskCreateRequest,
    TaskStatus,
    TaskUpdate,
    parse_model,
)

_LOG = logging.getLogger(__name__)

TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.QUEUED: frozenset({TaskStatus.PROCESSING, TaskStatus.CANCELLED}),
    TaskStatus.PROCESSING: frozenset({
        TaskStatus.PROCESSING,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    }),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def generate_task_id() -> str:
    return f"task_{secrets.token_urlsafe(16)}"


def _rpc_id() -> str:
    return secrets.token_urlsafe(16)


def clamp_progress(progress: float) -> float:
    """Clamp to [0, 1]. Non-numeric and non-finite values are rejected.

    Raises:
        ValidationError: If *progress* is not a finite number.
    """
    if isinstance(progress, bool) or not isinstance(progress, (int, float)):
        raise ValidationError(f"progress must be a number, got {progress!r}")
    if not math.isfinite(progress):
        raise ValidationError(f"progress must be finite, got {progress!r}")
    return max(0.0, min(1.0, float(progress)))


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TRANSITIONS[current]


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
class TaskBuilder:
    """Accumulates a task creation request around one request message."""

    def __init__(self, message: Message):
        self._request: dict[str, Any] = {"message": message, "priority": "normal"}

    def callback(self, url: str) -> "TaskBuilder":
        self._request["callback"] = url
        return self

    def timeout(self, seconds: float) -> "TaskBuilder":
        self._request["timeout"] = seconds
        return self

    def priority(self, priority: Priority) -> "TaskBuilder":
        self._request["priority"] = priority
        return self

    def metadata(self, metadata: dict[str, Any]) -> "TaskBuilder":
        self._request["metadata"] = {**self._request.get("metadata", {}), **metadata}
        return self

    def build(self) -> TaskCreateRequest:
        """Raises ValidationError on a malformed request."""
        return parse_model(TaskCreateRequest, self._request)

    def build_rpc(self, rpc_id: RPCId = None) -> JSONRPCRequest:
        return JSONRPCRequest(
            method="task/create",
            params=self.build().to_wire(),
            id=rpc_id if rpc_id is not None else _rpc_id(),
        )


def create_task(
    request: Union[TaskCreateRequest, Message, dict],
    agent: Union[Identity, Party],
    clock: Clock = utc_now,
    task_id: Optional[str] = None,
) -> Task:
    """Accept a request and return a new ``queued`` task.

    Priority, timeout, callback and the submitting agent are recorded in the
    task metadata.
    """
    if isinstance(request, Message):
        request = TaskCreateRequest(message=request)
    request = parse_model(TaskCreateRequest, request)
    agent_id = agent.id
    metadata: dict[str, Any] = {
        **(request.metadata or {}),
        "agentId": agent_id,
        "requestId": request.message.id,
        "priority": request.priority,
    }
    if request.timeout:
        metadata["timeout"] = request.timeout
    if request.callback:
        metadata["callback"] = request.callback

    now = clock()
    task = parse_model(Task, {
        "id": task_id or generate_task_id(),
        "status": TaskStatus.QUEUED,
        "created_at": now,
        "updated_at": now,
        "metadata": metadata,
    })
    _LOG.info("task %s queued for agent=%s request=%s", task.id, agent_id, request.message.id)
    return task


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def apply_update(
    task: Task, update: Union[TaskUpdate, dict], clock: Clock = utc_now
) -> Task:
    """Apply *update* to *task* and return the new task.

    Only fields explicitly present in *update* are merged. An update without
    ``status`` keeps the current status, which is itself a transition that
    must be legal (only ``processing`` may update in place). Progress is
    clamped to [0, 1].

    Raises:
        IllegalTransitionError: If the status change is not permitted.
        ValidationError: If the merged task violates task invariants.
    """
    update = parse_model(TaskUpdate, update)
    target = update.status or task.status
    if not can_transition(task.status, target):
        raise IllegalTransitionError(task.status.value, target.value)

    changes = {name: getattr(update, name) for name in update.model_fields_set}
    if changes.get("progress") is not None:
        changes["progress"] = clamp_progress(changes["progress"])
    changes["status"] = target
    changes["updated_at"] = clock()

    current = {name: getattr(task, name) for name in Task.model_fields}
    merged = parse_model(Task, {**current, **changes})
    if target is not task.status:
        _LOG.info("task %s %s -> %s", task.id, task.status.value, target.value)
    return merged


def start_processing(
    task: Task,
    message: Optional[str] = None,
    estimated_completion: Optional[datetime] = None,
    clock: Clock = utc_now,
) -> Task:
    update: dict[str, Any] = {"status": TaskStatus.PROCESSING, "progress": 0.0}
    if message is not None:
        update["message"] = message
    if estimated_completion is not None:
        update["estimated_completion"] = estimated_completion
    return apply_update(task, update, clock)


def update_progress(
    task: Task, progress: float, message: Optional[str] = None, clock: Clock = utc_now
) -> Task:
    """Record progress on a processing task; out-of-range values are clamped."""
    update: dict[str, Any] = {"progress": clamp_progress(progress)}
    if message is not None:
        update["message"] = message
    return apply_update(task, update, clock)


def complete(task: Task, result: Message, clock: Clock = utc_now) -> Task:
    if not isinstance(result, Message):
        raise ValidationError("complete requires a result Message")
    return apply_update(
        task,
        {
            "status": TaskStatus.COMPLETED,
            "progress": 1.0,
            "result": result,
            "error": None,
            "message": "Task completed successfully",
        },
        clock,
    )


def fail(task: Task, error: str, clock: Clock = utc_now) -> Task:
    if not error:
        raise ValidationError("fail requires an error description")
    return apply_update(
        task,
        {"status": TaskStatus.FAILED, "error": error, "message": "Task failed"},
        clock,
    )


def cancel(task: Task, reason: Optional[str] = None, clock: Clock = utc_now) -> Task:
    return apply_update(
        task,
        {
            "status": TaskStatus.CANCELLED,
            "message": reason or "Task cancelled",
            "error": reason,
        },
        clock,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def is_active(task: Task) -> bool:
    return task.status in (TaskStatus.QUEUED, TaskStatus.PROCESSING)


def is_finished(task: Task) -> bool:
    """True for any terminal status, successful or not."""
    return task.status in TERMINAL_STATUSES


def is_succeeded(task: Task) -> bool:
    return task.status is TaskStatus.COMPLETED


def is_expired(task: Task, clock: Clock = utc_now) -> bool:
    """Passive check against ``metadata.timeout`` (seconds since creation).

    Task validation guarantees the timeout, when present, is a positive number.
    """
    timeout = (task.metadata or {}).get("timeout")
    if not timeout:
        return False
    return (clock() - task.created_at).total_seconds() > timeout


def duration(task: Task, clock: Clock = utc_now) -> float:
    """Seconds from creation to the terminal update, or to now if active."""
    end = task.updated_at if is_finished(task) else clock()
    return (end - task.created_at).total_seconds()


def estimate_completion(task: Task, clock: Clock = utc_now) -> Optional[datetime]:
    """Linear extrapolation from elapsed time and progress; None at zero progress."""
    if not task.progress:
        return None
    now = clock()
    elapsed = duration(task, lambda: now)
    remaining = elapsed / task.progress - elapsed
    return now + timedelta(seconds=remaining)


# ---------------------------------------------------------------------------
# JSON-RPC request builders (no transport)
# ---------------------------------------------------------------------------
def status_request(task_id: str, rpc_id: RPCId = None) -> JSONRPCRequest:
    return JSONRPCRequest(
        method="task/status",
        params={"taskId": task_id},
        id=rpc_id if rpc_id is not None else _rpc_id(),
    )


def cancel_request(task_id: str, reason: Optional[str] = None, rpc_id: RPCId = None) -> JSONRPCRequest:
    params: dict[str, Any] = {"taskId": task_id}
    if reason:
        params["reason"] = reason
    return JSONRPCRequest(
        method="task/cancel",
        params=params,
        id=rpc_id if rpc_id is not None else _rpc_id(),
    )


def list_request(
    status: Optional[TaskStatus] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    rpc_id: RPCId = None,
) -> JSONRPCRequest:
    params: dict[str, Any] = {}
    if status is not None:
        params["status"] = TaskStatus(status).value
    if limit is not None:
        params["limit"] = limit
    if offset is not None:
        params["offset"] = offset
    return JSONRPCRequest(
        method="task/list",
        params=params,
        id=rpc_id if rpc_id is not None else _rpc_id(),
    )


def status_update(task: Task) -> JSONRPCRequest:
    """``task/update`` notification describing the current task state."""
    wire = task.to_wire()
    params = {
        "taskId": wire["id"],
        "status": wire["status"],
        "updatedAt": wire["updatedAt"],
    }
    for key in ("progress", "message", "result", "error"):
        if key in wire:
            params[key] = wire[key]
    return JSONRPCRequest(method="task/update", params=params, id=_rpc_id())


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
@dataclass
class TaskStats:
    total: int = 0
    queued: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    average_duration: float = 0.0


def validate_task(candidate: Any) -> Task:
    return parse_model(Task, candidate)


def filter_by_status(tasks: Iterable[Task], status: TaskStatus) -> list[Task]:
    return [t for t in tasks if t.status is TaskStatus(status)]


def sort_by_created_at(tasks: Iterable[Task], descending: bool = True) -> list[Task]:
    return sorted(tasks, key=lambda t: t.created_at, reverse=descending)


def task_stats(tasks: Iterable[Task]) -> TaskStats:
    """Counts per status and mean duration of finished tasks."""
    stats = TaskStats()
    finished_total = 0.0
    finished_count = 0
    for task in tasks:
        stats.total += 1
        setattr(stats, task.status.value, getattr(stats, task.status.value) + 1)
        if is_finished(task):
            finished_total += duration(task)
            finished_count += 1
    if finished_count:
        stats.average_duration = finished_total / finished_count
    return stats
