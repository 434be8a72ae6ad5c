# src/core/__init__.py
"""
Core domain.
Pure pricing and geo logic, independent of infrastructure.
"""
