"""Backup and restore of Docker hosts, executed locally or over SSH."""

__version__ = "0.1.0"
