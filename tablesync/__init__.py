"""tablesync - schema-driven CSV / ZIP synchronisation for PostgreSQL tables."""

__version__ = "0.1.0"
