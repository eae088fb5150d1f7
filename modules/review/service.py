"""
Review Service - Business Logic
==================================
List and add product reviews stored under reviews/{product_key}.
"""

import logging
from typing import Any, Dict, List, Tuple

from common.helpers import now_utc
from modules.shared_store.firebase import SharedStore

logger = logging.getLogger("misab.review")


def reviews_namespace(product_key: str) -> str:
    return f"reviews/{product_key}"


class ReviewService:

    async def list_reviews(self, shared: SharedStore, product_key: str) -> Tuple[List[Dict[str, Any]], float]:
        """Returns (reviews, average_rating)."""
        data = await shared.read(reviews_namespace(product_key))
        if not isinstance(data, dict):
            return [], 0.0

        reviews = [r for r in data.values() if isinstance(r, dict)]
        ratings = [r.get("rating", 0) for r in reviews if isinstance(r.get("rating"), (int, float))]
        average = sum(ratings) / len(ratings) if ratings else 0.0
        return reviews, average

    async def has_reviewed(self, shared: SharedStore, product_key: str, email: str) -> bool:
        reviews, _ = await self.list_reviews(shared, product_key)
        return any(r.get("userId") == email for r in reviews)

    async def add_review(self, shared, product_key, email, user_name, rating, comment=""):
        if not email:
            return {"success": False, "message": "Please login to submit a review"}
        if not isinstance(rating, int) or rating < 1 or rating > 5:
            return {"success": False, "message": "Please select a rating between 1 and 5"}
        if await self.has_reviewed(shared, product_key, email):
            return {"success": False, "message": "You have already reviewed this product"}

        review = {
            "userId": email,
            "userName": (user_name or "").strip(),
            "rating": rating,
            "comment": (comment or "").strip(),
            "date": now_utc().isoformat(),
        }
        key = await shared.push(reviews_namespace(product_key), review)
        logger.info(f"Review {key} added for product {product_key} by {email}")
        return {"success": True, "review": review}


# Singleton
review_service = ReviewService()
