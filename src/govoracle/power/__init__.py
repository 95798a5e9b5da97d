"""Voting power: service client, normalization and snapshot backups."""

from .aggregator import PowerAggregator, parse_power_response, parse_power_value
from .backup import BackupResult, PowerBackupService

__all__ = [
    "BackupResult",
    "PowerAggregator",
    "PowerBackupService",
    "parse_power_response",
    "parse_power_value",
]
