"""
Journal Ledger

Transaction edit and period balance engine for a double-entry ledger.
"""

__version__ = "1.0.0"
