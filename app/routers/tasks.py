from fastapi import APIRouter, status

from app.core.errors import ForbiddenError
from app.dependencies import CurrentUser, TaskServiceDep
from app.models import TaskAssign, TaskCreate, TaskResponse, TaskUpdate

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, current_user: CurrentUser, tasks: TaskServiceDep):
    """Create a new task owned by the caller"""
    return await tasks.create(task_data, current_user.id)


@router.get("/", response_model=list[TaskResponse])
async def get_tasks(current_user: CurrentUser, tasks: TaskServiceDep):
    """Every task for Admins, otherwise tasks the caller created or is assigned to"""
    return await tasks.find_all(current_user)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, current_user: CurrentUser, tasks: TaskServiceDep):
    """Get a specific task by ID"""
    if not await tasks.can_access_task(task_id, current_user.id, current_user.role):
        raise ForbiddenError("Access denied")
    return await tasks.find_one(task_id)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str, task_data: TaskUpdate, current_user: CurrentUser, tasks: TaskServiceDep
):
    return await tasks.update(task_id, task_data, current_user)


@router.patch("/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    task_id: str, assign_data: TaskAssign, current_user: CurrentUser, tasks: TaskServiceDep
):
    """Assign the task, or unassign it when assignee_id is empty"""
    return await tasks.assign(task_id, assign_data, current_user)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, current_user: CurrentUser, tasks: TaskServiceDep):
    """Delete a task"""
    await tasks.remove(task_id, current_user)
