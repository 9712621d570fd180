from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

from errors import ReviewValidationError

Tone = Literal["professional", "friendly", "empathetic", "apologetic"]
TONES = ("professional", "friendly", "empathetic", "apologetic")
DEFAULT_TONE: Tone = "professional"
DEFAULT_RATING = 3


@dataclass(frozen=True)
class ReviewInput:
    """Everything the prompt needs for one generation request."""
    review_text: str
    star_rating: int = DEFAULT_RATING
    tone: Tone = DEFAULT_TONE
    restaurant_name: Optional[str] = None
    brand_voice_notes: Optional[str] = None
    is_demo: bool = False


def normalize_rating(rating: Optional[int]) -> int:
    if not rating:
        return DEFAULT_RATING
    return max(1, min(5, rating))


def normalize_tone(tone: Optional[str]) -> Tone:
    if tone in TONES:
        return tone
    return DEFAULT_TONE


class GenerateRequest(BaseModel):
    review: Optional[str] = None
    rating: Optional[int] = None
    tone: Optional[str] = None
    restaurantName: Optional[str] = None
    brandVoice: Optional[str] = None
    isDemo: bool = False

    def to_review_input(
        self,
        default_restaurant_name: Optional[str] = None,
        default_brand_voice: Optional[str] = None,
    ) -> ReviewInput:
        if not self.review or not self.review.strip():
            raise ReviewValidationError()
        return ReviewInput(
            review_text=self.review,
            star_rating=normalize_rating(self.rating),
            tone=normalize_tone(self.tone),
            restaurant_name=self.restaurantName or default_restaurant_name or None,
            brand_voice_notes=self.brandVoice or default_brand_voice or None,
            is_demo=self.isDemo,
        )


class ProfileUpdate(BaseModel):
    restaurantName: Optional[str] = None
    brandVoice: Optional[str] = None


class ProfileOut(BaseModel):
    id: str
    email: Optional[str] = None
    restaurantName: Optional[str] = None
    brandVoice: Optional[str] = None
    subscriptionStatus: str = "free"
    currentPeriodEnd: Optional[datetime] = None


class SavedResponse(BaseModel):
    id: str
    review: str
    rating: int
    tone: str
    restaurantName: Optional[str] = None
    response: str
    createdAt: datetime


class UsageSummary(BaseModel):
    plan: str
    monthlyUsage: int
    # None means unlimited
    monthlyLimit: Optional[int] = None
    remaining: Optional[int] = None
    totalResponses: int
    currentPeriodEnd: Optional[datetime] = None


class SessionUrl(BaseModel):
    url: str


class ResponseList(BaseModel):
    responses: List[SavedResponse]
