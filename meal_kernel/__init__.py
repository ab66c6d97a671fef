"""
Meal Kernel

Shared foundation for the meal-benefit scheduling and settlement engine:
- Typed, coded exception hierarchy
- Structured JSON logging with request-scoped context
- Injectable clock and local-date helpers
- SQLAlchemy declarative base and session management
"""

__version__ = "0.1.0"
