"""
Store layer: profiles, saved responses, monthly usage and auth sessions.

Every function takes an open SQLAlchemy session and commits its own writes.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import AuthSession, GeneratedResponse, Profile
from schemas import ReviewInput


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.get(Profile, user_id)


def get_profile_by_customer(db: Session, customer_id: str) -> Optional[Profile]:
    return db.scalars(
        select(Profile).where(Profile.stripe_customer_id == customer_id)
    ).first()


def update_profile(db: Session, profile: Profile, **changes) -> Profile:
    for field, value in changes.items():
        setattr(profile, field, value)
    profile.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(profile)
    return profile


def get_subscription_tier(db: Session, user_id: str) -> str:
    profile = get_profile(db, user_id)
    if profile is None or not profile.subscription_status:
        return "free"
    return profile.subscription_status


def get_monthly_usage_count(db: Session, user_id: str, now: Optional[datetime] = None) -> int:
    """Responses saved by the user since the start of the current calendar month (UTC)."""
    return db.scalar(
        select(func.count(GeneratedResponse.id)).where(
            GeneratedResponse.user_id == user_id,
            GeneratedResponse.created_at >= month_start(now),
        )
    ) or 0


def count_responses(db: Session, user_id: str) -> int:
    return db.scalar(
        select(func.count(GeneratedResponse.id)).where(GeneratedResponse.user_id == user_id)
    ) or 0


def insert_response(db: Session, user_id: str, review_input: ReviewInput, response_text: str) -> GeneratedResponse:
    record = GeneratedResponse(
        user_id=user_id,
        review=review_input.review_text,
        rating=review_input.star_rating,
        tone=review_input.tone,
        restaurant_name=review_input.restaurant_name,
        brand_voice=review_input.brand_voice_notes,
        response=response_text,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def list_responses(db: Session, user_id: str, limit: int = 50) -> List[GeneratedResponse]:
    return list(
        db.scalars(
            select(GeneratedResponse)
            .where(GeneratedResponse.user_id == user_id)
            .order_by(GeneratedResponse.created_at.desc())
            .limit(limit)
        )
    )


def delete_response(db: Session, user_id: str, response_id: str) -> bool:
    record = db.get(GeneratedResponse, response_id)
    if record is None or record.user_id != user_id:
        return False
    db.delete(record)
    db.commit()
    return True


def get_session_profile(db: Session, token: str, now: Optional[datetime] = None) -> Optional[Profile]:
    session = db.get(AuthSession, token)
    if session is None:
        return None
    now = now or datetime.utcnow()
    if session.expires_at is not None and session.expires_at <= now:
        return None
    return get_profile(db, session.user_id)
