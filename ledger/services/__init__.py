"""
Journal Ledger - Services Package
"""
