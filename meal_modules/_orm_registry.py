"""
Module ORM Registry (``meal_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.

Also provides ``create_all_tables()`` -- the entry point that registers
all module ORM models and then creates every table.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``meal_kernel.db.engine.create_tables`` so the kernel never imports
module code at import time.
"""


def import_all_orm_models() -> None:
    """Import every ``meal_modules.*.orm`` module to register ORM models.

    This function is idempotent -- repeated calls are harmless.
    """
    # fmt: off
    import meal_modules.employees.orm  # noqa: F401
    import meal_modules.lunch.orm  # noqa: F401
    import meal_modules.compensation.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """Create every module table.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from meal_kernel.db.engine import create_tables

    create_tables()
