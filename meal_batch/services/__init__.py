"""Batch services: the SAVEPOINT-per-item executor."""

from meal_batch.services.executor import BatchExecutor

__all__ = ["BatchExecutor"]
