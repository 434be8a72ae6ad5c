# src/services/payments/__init__.py
"""
Payments: gateway adapter, durable payment records, reconciliation.
"""
