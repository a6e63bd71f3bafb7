"""
System Monitor History Store.

Time-series persistence, range queries, CSV export and retention for
periodic system metric snapshots.
"""

__version__ = "1.0.0"
