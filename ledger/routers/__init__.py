"""
Journal Ledger - API Routers Package
"""
