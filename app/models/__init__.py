from app.models.bills import Bill, BillReminderState
from app.models.notifications import ReminderLog
from app.models.settings import NotificationSettings

__all__ = [
    "Bill",
    "BillReminderState",
    "NotificationSettings",
    "ReminderLog",
]
