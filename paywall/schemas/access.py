"""Pydantic schemas for access tokens and paywall endpoints"""
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# Slugs double as cookie names, so keep them to cookie-safe characters
ARTICLE_SLUG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,199}$")


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address"""
    return email.strip().lower()


def is_valid_article_slug(slug: Optional[str]) -> bool:
    return bool(slug) and ARTICLE_SLUG_PATTERN.match(slug) is not None


class AccessToken(BaseModel):
    """A time-limited grant for one article and one email.

    Identity is the pair (article_slug, token_id). Only ``expires_at`` ever
    changes after the token is written (on renewal).
    """
    article_slug: str
    token_id: str
    email: str
    created_at: datetime
    expires_at: datetime

    def is_valid_at(self, now: datetime) -> bool:
        return now < self.expires_at


class _ArticleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    article_slug: str = Field(alias="articleSlug")

    @field_validator("article_slug")
    @classmethod
    def check_article_slug(cls, v):
        if not is_valid_article_slug(v):
            raise ValueError("Invalid article slug")
        return v


class ResendLinkRequest(_ArticleRequest):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize(cls, v):
        return normalize_email(v)


class CheckoutRequest(_ArticleRequest):
    price_id: str = Field(alias="priceId", min_length=1)
    email: Optional[EmailStr] = None


class VerifyLinkRequest(_ArticleRequest):
    token: str = Field(min_length=1, max_length=256)
