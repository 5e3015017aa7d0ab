from fastapi import APIRouter, Depends, Query

from backend.auth.dependencies import require_admin
from backend.core.rate_limit import general_limiter
from backend.schemas.common import ApiResponse
from backend.schemas.scheduler import HealthReport, SchedulerStatus, TaskStatus
from backend.services.scheduler_service import scheduler_service

router = APIRouter(tags=['scheduler'], dependencies=[Depends(require_admin), Depends(general_limiter)])


@router.get('/status', response_model=ApiResponse[SchedulerStatus])
def scheduler_status():
    status_report = SchedulerStatus(
        running=scheduler_service.is_running,
        tasks=[TaskStatus(**task) for task in scheduler_service.tasks_status()],
    )
    return ApiResponse[SchedulerStatus](message='Scheduler status', data=status_report)


@router.get('/stats', response_model=ApiResponse[dict])
def scheduler_stats():
    return ApiResponse[dict](message='Scheduler statistics', data=scheduler_service.stats())


@router.get('/health', response_model=ApiResponse[HealthReport])
def scheduler_health():
    report = HealthReport(**scheduler_service.health())
    message = 'System healthy' if report.database and not report.warnings else 'System has warnings'
    return ApiResponse[HealthReport](message=message, data=report)


@router.post('/tasks/{task_name}/toggle', response_model=ApiResponse[TaskStatus])
def toggle_task(task_name: str, enabled: bool = Query()):
    scheduler_service.toggle_task(task_name, enabled)
    task = next(item for item in scheduler_service.tasks_status() if item['name'] == task_name)
    return ApiResponse[TaskStatus](
        message=f'Task {task_name} {"enabled" if enabled else "disabled"}',
        data=TaskStatus(**task),
    )


@router.post('/tasks/{task_name}/run', response_model=ApiResponse[dict])
def run_task(task_name: str):
    outcome = scheduler_service.run_task_manually(task_name)
    message = f'Task {task_name} executed' if outcome['error'] is None else f'Task {task_name} failed'
    return ApiResponse[dict](success=outcome['error'] is None, message=message, data=outcome)


@router.post('/send-reminders', response_model=ApiResponse[dict])
def send_reminders():
    outcome = scheduler_service.run_task_manually('appointment-reminders')
    return ApiResponse[dict](success=outcome['error'] is None, message='Reminder task executed', data=outcome)


@router.post('/cleanup', response_model=ApiResponse[dict])
def cleanup():
    outcome = scheduler_service.run_task_manually('daily-cleanup')
    return ApiResponse[dict](success=outcome['error'] is None, message='Cleanup task executed', data=outcome)
