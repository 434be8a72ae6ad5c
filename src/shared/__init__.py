# src/shared/__init__.py
"""
Code shared between the API, the workers and the CLI.

Modules:
- events: RabbitMQ event schemas
- models: DTOs and pydantic models
"""

__all__: list[str] = []
