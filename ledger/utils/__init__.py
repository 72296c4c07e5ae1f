"""
Journal Ledger - Utilities Package
"""
