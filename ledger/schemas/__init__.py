"""
Journal Ledger - Pydantic Schemas Package
"""
