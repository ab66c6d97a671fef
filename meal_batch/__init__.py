"""
meal_batch -- Daily jobs for the meal-benefit engine.

Runs the settlement of the day's lunch orders after the cutoff, the
compensation day close, and auto-renewal of ended subscriptions and
compensations.  Every job is a ``BatchTask`` executed by
``BatchExecutor`` with one SAVEPOINT per item: one failing employee never
aborts the job.

Architecture:
    meal_batch/ is a top-level package.  Nothing in meal_kernel/,
    meal_engines/ or meal_modules/ imports from meal_batch.  Tasks drive
    the module services with ``auto_commit=False``; the caller of
    ``BatchExecutor.run`` owns the transaction.
"""
