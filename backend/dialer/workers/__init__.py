"""
Workers Package
Background workers for the outbound call queue
"""
from dialer.workers.watchdog_worker import WatchdogWorker

__all__ = [
    "WatchdogWorker"
]
