"""Task admin API — worker executions.

Learn: Executions are read straight off the executor. Killing a task
sends SIGTERM and marks it failed; its exit still runs the usual
on_exit bookkeeping (e.g. the chat queue moves to its next message).
"""

from fastapi import APIRouter, Depends, HTTPException

from callbridge.agent.executor import TaskExecution
from callbridge.api.dependencies import get_bridge
from callbridge.bridge import Bridge
from callbridge.schemas.task import KillResponse, TaskRead

router = APIRouter()


def _read(execution: TaskExecution) -> TaskRead:
    return TaskRead(
        task_id=execution.task_id,
        task=execution.task,
        status=execution.status.value,
        working_dir=execution.working_dir,
        pid=execution.process.pid,
        started_at=execution.started_at,
        completed_at=execution.completed_at,
        completion_summary=execution.completion_summary,
        exit_code=execution.exit_code,
        error=execution.error,
        output_tail=list(execution.output),
    )


@router.get("/tasks", response_model=list[TaskRead])
async def list_tasks(bridge: Bridge = Depends(get_bridge)):
    executions = sorted(bridge.executor.all(), key=lambda e: e.started_at, reverse=True)
    return [_read(e) for e in executions]


@router.get("/tasks/{task_id}", response_model=TaskRead)
async def get_task(task_id: str, bridge: Bridge = Depends(get_bridge)):
    execution = bridge.executor.get(task_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Task not found")
    return _read(execution)


@router.post("/tasks/{task_id}/kill", response_model=KillResponse)
async def kill_task(task_id: str, bridge: Bridge = Depends(get_bridge)):
    """Terminate a running worker."""
    if not bridge.executor.get(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return KillResponse(task_id=task_id, killed=bridge.executor.kill(task_id))
