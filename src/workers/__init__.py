"""Worker package exports."""

from src.workers.notification_delivery import DrainResult, NotificationDeliveryWorker

__all__ = ["DrainResult", "NotificationDeliveryWorker"]
