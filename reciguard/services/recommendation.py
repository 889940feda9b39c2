"""Calls to the external AI model.

Both endpoints are best-effort: a timeout, transport error, non-2xx answer or a
response without the expected field yields an empty result. Nothing is retried.
"""

import logging
from typing import Any, Optional

import requests

from ..errors import RecommendationUnavailable
from ..settings import settings

logger = logging.getLogger("reciguard.ai")


class RecommendationClient:
    def __init__(
        self,
        recommend_url: Optional[str] = None,
        allergy_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.recommend_url = recommend_url or settings.recommend_api_url
        self.allergy_url = allergy_url or settings.allergy_api_url
        self.timeout = timeout if timeout is not None else settings.ai_timeout_seconds
        self.session = session or requests.Session()

    def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise RecommendationUnavailable(f"AI model call to {url} failed: {e}") from e
        except ValueError as e:
            raise RecommendationUnavailable(f"AI model at {url} returned invalid JSON") from e

        logger.info(f"AI model response from {url}: {body}")
        if not isinstance(body, dict):
            raise RecommendationUnavailable(f"AI model at {url} returned {type(body).__name__}")
        return body

    def recommend(self, user_id: int) -> Optional[int]:
        """Recipe id recommended for the user today, or None."""
        logger.info(f"Calling recommendation model with user_id={user_id}")
        try:
            body = self._post(self.recommend_url, {"user_id": user_id})
            raw = body.get("recipe_id")
            if raw is None:
                raise RecommendationUnavailable("Response has no recipe_id")
            try:
                # The model sends numbers as floats ("42.0")
                return int(float(raw))
            except (TypeError, ValueError) as e:
                raise RecommendationUnavailable(f"Unusable recipe_id {raw!r}") from e
        except RecommendationUnavailable as e:
            logger.error(f"Recommendation unavailable: {e}")
            return None

    def similar_ingredients(self, recipe_id: int, user_id: int) -> list[str]:
        """Ingredients in the recipe that resemble the user's allergens."""
        logger.info(f"Calling allergy model with recipe_id={recipe_id} user_id={user_id}")
        try:
            body = self._post(self.allergy_url, {"recipe_id": recipe_id, "user_id": user_id})
            names = body.get("similar_ingredient")
            if names is None:
                return []
            if not isinstance(names, list):
                raise RecommendationUnavailable(f"similar_ingredient is {type(names).__name__}")
            return [str(n) for n in names if n]
        except RecommendationUnavailable as e:
            logger.error(f"Allergy similarity unavailable: {e}")
            return []


_client: Optional[RecommendationClient] = None


def get_recommendation_client() -> RecommendationClient:
    global _client
    if _client is None:
        _client = RecommendationClient()
    return _client
