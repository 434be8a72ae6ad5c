# src/services/requests/__init__.py
"""
Service request lifecycle: state machine, persistence, operations, routes.
"""
