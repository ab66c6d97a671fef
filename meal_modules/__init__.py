"""
Meal Modules.

Persistence and orchestration over the meal kernel and the pure engines.
Each module contains:
- Domain models (frozen DTOs, requests and results)
- ORM models with ``to_dto()`` / ``from_dto()`` conversion
- A service facade that owns the transaction boundary

Modules:
- Employees: consumed employee read model and the directory that builds
  ``EmployeeSnapshot`` values for the engines
- Lunch: subscriptions, daily orders, freeze/unfreeze, pause, cancel
- Compensation: daily-allowance budgets and their transactions

Scheduling rules (day counts, eligibility, pricing, transitions) live in
``meal_engines``; services only load state, call the engines and persist.
"""

from meal_modules import compensation, employees, lunch

__all__ = ["compensation", "employees", "lunch"]
