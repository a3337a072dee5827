"""
Forest reconciliation engine.

Merges fire-ban status, facility directory and closure notices for state
forests into one canonical record per forest, and attaches coordinates via
a cached, budgeted geocoding cascade.
"""

__version__ = "0.3.0"
