"""
Employees Module (``meal_modules.employees``).

Responsibility
--------------
The scheduling engine consumes employees; it does not own them.  This
module persists the scheduling-relevant columns of an employee and builds
the ``EmployeeSnapshot`` value the engines read, with the ids of the
employee's currently open benefits resolved from storage.
"""

from meal_modules.employees.directory import EmployeeDirectory
from meal_modules.employees.orm import EmployeeModel

__all__ = ["EmployeeDirectory", "EmployeeModel"]
