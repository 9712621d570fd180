from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey
from datetime import datetime
import uuid
from database import Base


def _new_id():
    return str(uuid.uuid4())


class Profile(Base):
    """Account profile: subscription state and brand settings"""
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True, default=_new_id)
    email = Column(String, nullable=True)
    subscription_status = Column(String, default="free", nullable=False)
    restaurant_name = Column(String, nullable=True)
    brand_voice = Column(Text, nullable=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GeneratedResponse(Base):
    """One generated reply together with the review it answers"""
    __tablename__ = "responses"

    id = Column(String, primary_key=True, index=True, default=_new_id)
    user_id = Column(String, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    review = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False, default=3)
    tone = Column(String, nullable=False, default="professional")
    restaurant_name = Column(String, nullable=True)
    brand_voice = Column(Text, nullable=True)
    response = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class AuthSession(Base):
    """Bearer token issued by the auth provider for a signed-in profile"""
    __tablename__ = "auth_sessions"

    token = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)
