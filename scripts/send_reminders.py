"""Send reminders for approved bookings that start soon. Run from cron."""
import logging
from datetime import datetime

from confbook.config import get_settings
from confbook.database import SessionLocal
from confbook.notifications import build_notifier
from confbook.reminders import send_due_reminders

logger = logging.getLogger("confbook.reminders")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
    settings = get_settings()
    if not settings.reminders_enabled:
        logger.info("Reminders are disabled; nothing to do")
        return

    notifier = build_notifier(settings)
    db = SessionLocal()
    try:
        send_due_reminders(
            db,
            notifier,
            datetime.utcnow(),
            minutes_before=settings.reminder_minutes_before,
            tolerance_minutes=settings.reminder_tolerance_minutes,
        )
    finally:
        db.close()


if __name__ == "__main__":
    main()
