"""
Home Ledger - Source Package

The synchronization and derived-metrics engine behind a shared
household finance tracker.

DESIGN PRINCIPLES:
1. The remote store is authoritative; the snapshot only follows it
2. Local mirror failures degrade, remote failures surface
3. Derived numbers are always recomputed from raw records
4. Storage backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Home Ledger Team"
