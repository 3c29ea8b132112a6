"""State/store layer.

This package owns the local collection cache and is the single place where
remote snapshots are merged into it.
"""
