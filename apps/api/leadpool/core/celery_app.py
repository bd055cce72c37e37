from celery import Celery
from celery.schedules import crontab

from leadpool.core.config import get_settings
from leadpool.core.database import create_session_factory
from leadpool.lifecycle.auto_transfer import AutoTransferJob

settings = get_settings()

celery_app = Celery("leadpool_api", broker=settings.redis_url, backend=settings.redis_url)
session_factory = create_session_factory(settings.database_url)

if settings.auto_transfer_enabled and settings.auto_transfer_backend.lower() == "celery":
    # crontab has minute resolution; auto_transfer_second only applies to the thread backend
    celery_app.conf.beat_schedule = {
        "customer-auto-transfer": {
            "task": "leadpool.tasks.auto_transfer",
            "schedule": crontab(hour=settings.auto_transfer_hour, minute=settings.auto_transfer_minute),
        }
    }


@celery_app.task(name="leadpool.tasks.auto_transfer")
def auto_transfer_task() -> dict:
    session = session_factory()
    try:
        return AutoTransferJob(settings=settings).run(session).to_dict()
    finally:
        session.close()
