"""CLI command modules.

This package contains:
- setup: Coloured command group and the setup command
- status: success, failure, validate and doctor commands
- helpers: Global options and error reporting shared by commands
"""
