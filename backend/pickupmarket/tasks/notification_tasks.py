from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from pickupmarket.utils.notify import deliver_notification


def _task_log(task_name: str, *, status: str, started_at: float, **extra):
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": int(max(0.0, time.perf_counter() - float(started_at)) * 1000.0),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra)
    current_app.logger.info(json.dumps(payload))


def _retry_countdown(retries: int) -> int:
    # Exponential backoff, capped at 15 minutes.
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))


@shared_task(
    bind=True,
    name="pickupmarket.tasks.notification_tasks.deliver_notification",
    max_retries=5,
)
def deliver_notification_task(self, *, notification_id: int):
    started = time.perf_counter()
    if deliver_notification(int(notification_id)):
        _task_log("deliver_notification", status="ok", started_at=started, notification_id=notification_id)
        return {"ok": True}
    if int(self.request.retries or 0) < int(self.max_retries or 0):
        countdown = _retry_countdown(int(self.request.retries or 0))
        _task_log(
            "deliver_notification",
            status="retrying",
            started_at=started,
            notification_id=notification_id,
            countdown=countdown,
        )
        raise self.retry(exc=RuntimeError("notification_delivery_failed"), countdown=countdown)
    _task_log("deliver_notification", status="failed", started_at=started, notification_id=notification_id)
    return {"ok": False}
