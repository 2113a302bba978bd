from riskescalation.db.repositories.notifications import StaffNotificationRepository

__all__ = ["StaffNotificationRepository"]
