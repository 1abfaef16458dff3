# rentdesk/core/scheduler_decorators.py
from typing import Callable, Dict, Any, List

# Global registry of scheduled Dramatiq tasks
SCHEDULED_TASKS: List[Dict[str, Any]] = []

def _register_task(func: Callable, trigger: str, **trigger_args):
    """Internal: Register the decorated function and schedule info."""
    SCHEDULED_TASKS.append({
        "func": func,
        "trigger": trigger,
        "trigger_args": trigger_args,
    })
    return func

def parse_cron(expr: str) -> Dict[str, str]:
    """Split a 5-field cron expression into APScheduler CronTrigger fields."""
    parts = expr.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression (expected 5 fields): {expr!r}")
    minute, hour, day, month, day_of_week = parts
    return {
        "minute": minute,
        "hour": hour,
        "day": day,
        "month": month,
        "day_of_week": day_of_week,
    }

def run_cron(expr: str, timezone: str = "UTC"):
    """Generic cron expression, e.g., run_cron('0 8 1 * *')"""
    fields = parse_cron(expr)
    def wrapper(func: Callable):
        return _register_task(func, "cron", timezone=timezone, **fields)
    return wrapper
