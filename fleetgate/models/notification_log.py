"""
Notification log — one row per email delivery attempt (ok or failed).
Written by the Notifier for observability; never read by gate decisions.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from fleetgate.database import Base


class NotificationLog(Base):
    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient = Column(String(200), nullable=False)
    subject = Column(String(300), nullable=False)
    ok = Column(Integer, default=0, nullable=False)
    provider_id = Column(String(100))        # MailerSend message id
    error = Column(Text)
    attempted_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<NotificationLog {self.id} to={self.recipient} ok={self.ok}>"
