"""
Review Routes
===============
Public review listing; submitting requires a signed-in customer.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from common.security import SessionToken
from modules.auth.deps import get_cart_manager, get_current_token, require_login
from modules.cart.service import CartManager
from modules.review.service import review_service

router = APIRouter(prefix="/api/reviews", tags=["review"])


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=2000)
    user_name: str = Field("", max_length=100)


@router.get("/{product_key}")
async def list_reviews(
    product_key: str,
    manager: CartManager = Depends(get_cart_manager),
    token=Depends(get_current_token),
):
    shared = manager.ctx.shared
    reviews, average = await review_service.list_reviews(shared, product_key)
    has_reviewed = bool(token and token.email and any(r.get("userId") == token.email for r in reviews))
    return {
        "reviews": reviews,
        "average_rating": round(average, 2),
        "count": len(reviews),
        "has_reviewed": has_reviewed,
    }


@router.post("/{product_key}")
async def submit_review(
    product_key: str,
    body: ReviewRequest,
    manager: CartManager = Depends(get_cart_manager),
    token: SessionToken = Depends(require_login),
):
    result = await review_service.add_review(
        manager.ctx.shared, product_key,
        email=token.email, user_name=body.user_name,
        rating=body.rating, comment=body.comment,
    )
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result
