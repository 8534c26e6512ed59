from tablesync.cli.main import main

__all__ = ["main"]
