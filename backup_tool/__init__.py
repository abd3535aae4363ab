"""
backup-tool: host-local backup orchestration with cron-based scheduling.

This package runs rsync-based copies of configured source directories,
mails a transcript of each run, and provides interactive helpers to manage
persistent mount points for backup storage.
"""

__version__ = "0.1.0"
