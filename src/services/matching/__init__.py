# src/services/matching/__init__.py
"""
Provider matching: candidate ranking and atomic assignment.
"""
