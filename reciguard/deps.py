"""FastAPI dependencies for ReciGuard API.

Provides:
- Database session dependency
- Acting user resolution (X-User-Id header)
- Image store and AI model client
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .models import User
from .services.recommendation import RecommendationClient, get_recommendation_client
from .services.storage import ImageStore, get_image_store


def get_current_user(
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> User:
    """Resolve the acting user from the X-User-Id header.

    Authentication happens upstream (gateway); this service only needs the id.

    Raises:
        HTTPException 401 if the header is missing or not an integer
        HTTPException 404 if no such user exists
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid X-User-Id '{x_user_id}'")

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user


def get_current_user_id(user: User = Depends(get_current_user)) -> int:
    return user.id


def get_store() -> ImageStore:
    return get_image_store()


def get_ai_client() -> RecommendationClient:
    return get_recommendation_client()
