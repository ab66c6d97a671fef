"""Registered batch tasks of the meal-benefit engine."""

from meal_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
)
from meal_batch.tasks.renewal import CompensationRenewalTask, LunchRenewalTask
from meal_batch.tasks.settlement import CompensationDayCloseTask, DailySettlementTask


def default_task_registry() -> TaskRegistry:
    """Registry with every daily job registered."""
    registry = TaskRegistry()
    for task in (
        DailySettlementTask(),
        CompensationDayCloseTask(),
        LunchRenewalTask(),
        CompensationRenewalTask(),
    ):
        registry.register(task)
    return registry


__all__ = [
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "CompensationDayCloseTask",
    "CompensationRenewalTask",
    "DailySettlementTask",
    "LunchRenewalTask",
    "TaskRegistry",
    "default_task_registry",
]
