# src/services/__init__.py
"""
Application services.

- requests: request lifecycle (state machine, create/cancel/start/complete)
- matching: provider matching and availability
- payments: gateway adapter and reconciliation
- api: FastAPI application and admin routes
"""

__all__: list[str] = []
