"""Cross-region replication and retention of RDS automated snapshots."""

__version__ = "1.0.0"
