from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from taskboard.api.deps import current_principal, get_task_store
from taskboard.api.schemas import TaskCreateIn, TaskUpdateIn, parse_body, validation_failed
from taskboard.tasks.store import Task, TaskStatus, TaskStore
from taskboard.utils.log import logger

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(current_principal)])


def _owned(store: TaskStore, principal: str, task_id: str) -> Task:
    task = store.get(user_id=principal, task_id=task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("")
async def list_tasks(
    page: int = Query(default=1),
    limit: int = Query(default=10),
    status: str | None = Query(default=None),
    search: str | None = Query(default=None),
    principal: str = Depends(current_principal),
    store: TaskStore = Depends(get_task_store),
) -> dict[str, Any]:
    if page < 1 or limit < 1 or limit > 100:
        raise validation_failed(["page must be >= 1 and limit between 1 and 100"])
    status_filter = None
    if status:
        try:
            status_filter = TaskStatus(status)
        except ValueError:
            raise validation_failed(["status must be one of OPEN, DONE"]) from None
    result = store.list_tasks(
        user_id=principal, page=page, limit=limit, status=status_filter, search=search
    )
    return {
        "tasks": [t.to_public() for t in result.tasks],
        "pagination": {
            "total": result.total,
            "page": result.page,
            "totalPages": result.total_pages,
        },
    }


@router.post("")
async def create_task(
    request: Request,
    principal: str = Depends(current_principal),
    store: TaskStore = Depends(get_task_store),
) -> JSONResponse:
    body = await parse_body(request, TaskCreateIn)
    task = store.create(user_id=principal, title=body.title, description=body.description)
    logger.info("task_created", task_id=task.id)
    return JSONResponse(task.to_public(), status_code=201)


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    principal: str = Depends(current_principal),
    store: TaskStore = Depends(get_task_store),
) -> dict[str, Any]:
    return _owned(store, principal, task_id).to_public()


@router.patch("/{task_id}/toggle")
async def toggle_task(
    task_id: str,
    principal: str = Depends(current_principal),
    store: TaskStore = Depends(get_task_store),
) -> dict[str, Any]:
    task = _owned(store, principal, task_id)
    return store.toggle(task).to_public()


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    request: Request,
    principal: str = Depends(current_principal),
    store: TaskStore = Depends(get_task_store),
) -> dict[str, Any]:
    body = await parse_body(request, TaskUpdateIn)
    task = _owned(store, principal, task_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("title", "") is None:
        raise validation_failed(["title: cannot be null"])
    if changes.get("status", "") is None:
        raise validation_failed(["status: cannot be null"])
    return store.update(task, **changes).to_public()


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    principal: str = Depends(current_principal),
    store: TaskStore = Depends(get_task_store),
) -> dict[str, Any]:
    task = _owned(store, principal, task_id)
    store.delete(task)
    logger.info("task_deleted", task_id=task.id)
    return {"message": "Task deleted successfully"}
