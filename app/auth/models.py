from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)

    password_hash = Column(String, nullable=False)

    bio = Column(Text, default="")
    timezone = Column(String, default="America/New_York")

    # Notification preferences
    email_notifications = Column(Boolean, default=True, nullable=False)
    push_notifications = Column(Boolean, default=True, nullable=False)

    # Both only ever go up; recomputed from completed achievements
    level = Column(Integer, default=1, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)

    # Consecutive days with at least one completed commitment
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_activity_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    # Track when user was last active (updated on every authenticated request)
    last_active = Column(DateTime, nullable=True)

    device_tokens = relationship(
        "DeviceToken",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="DeviceToken.id",
    )


class DeviceToken(Base):
    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token = Column(String(512), nullable=False)
    platform = Column(String(16), nullable=False, default="web")  # ios | android | web
    last_active = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="device_tokens")

    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_device_token"),
    )
