"""Product reviews and helpfulness votes.

A product's ``average_rating`` and ``review_count`` are recomputed from its
approved reviews whenever one is created, edited or deleted. Each user holds
at most one vote per review: repeating the same vote withdraws it, the
opposite vote switches it.
"""
import asyncio
import logging
import math
import weakref
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .model import Review, VOTE_TYPES
from ..common.database import (
    create_review as db_create_review,
    delete_review as db_delete_review,
    fetch_product,
    fetch_review,
    fetch_review_ratings,
    fetch_reviews,
    set_product_rating,
    update_review,
)
from ..common.errors import Forbidden, InvalidInput, NotFound
from ..common.redis_client import cache_product
from ..orders.tracking import format_date

_logger = logging.getLogger(__name__)

_review_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

_VOTE_MESSAGES = {
    ("new", "helpful"): "Review marked as helpful",
    ("new", "unhelpful"): "Review marked as unhelpful",
    ("removed", "helpful"): "Helpful vote removed",
    ("removed", "unhelpful"): "Unhelpful vote removed",
    ("changed", "helpful"): "Vote changed to helpful",
    ("changed", "unhelpful"): "Vote changed to unhelpful",
}


@dataclass
class VoteTally:
    votes: Dict[str, str]
    helpful: int
    unhelpful: int


def _review_lock(review_id: int) -> asyncio.Lock:
    lock = _review_locks.get(review_id)
    if lock is None:
        lock = asyncio.Lock()
        _review_locks[review_id] = lock
    return lock


def rating_summary(ratings: List[int]) -> Dict[str, Any]:
    total = len(ratings)
    average = sum(ratings) / total if total else 0
    distribution = []
    for stars in (5, 4, 3, 2, 1):
        count = ratings.count(stars)
        distribution.append({
            "rating": stars,
            "count": count,
            "percentage": round(count / total * 100) if total else 0,
        })
    return {"average": round(average, 1), "total": total, "distribution": distribution}


def apply_vote(tally: VoteTally, user_id: str, vote_type: str) -> Tuple[VoteTally, Optional[str], str]:
    """Return the new tally, the user's resulting vote and a message."""
    votes = dict(tally.votes)
    helpful, unhelpful = tally.helpful, tally.unhelpful
    previous = votes.get(user_id)

    if previous == vote_type:
        del votes[user_id]
        if vote_type == "helpful":
            helpful = max(0, helpful - 1)
        else:
            unhelpful = max(0, unhelpful - 1)
        return VoteTally(votes, helpful, unhelpful), None, _VOTE_MESSAGES[("removed", vote_type)]

    votes[user_id] = vote_type
    if vote_type == "helpful":
        helpful += 1
        if previous is not None:
            unhelpful = max(0, unhelpful - 1)
    else:
        unhelpful += 1
        if previous is not None:
            helpful = max(0, helpful - 1)
    kind = "new" if previous is None else "changed"
    return VoteTally(votes, helpful, unhelpful), vote_type, _VOTE_MESSAGES[(kind, vote_type)]


def review_view(review: Review) -> Dict[str, Any]:
    return {
        "id": review.id,
        "productId": review.product_id,
        "userId": review.user_id,
        "rating": review.rating,
        "title": review.title,
        "comment": review.description,
        "helpful": review.helpful_count,
        "unhelpful": review.unhelpful_count,
        "createdAt": format_date(review.created_at),
    }


def _rating(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidInput("Valid rating between 1 and 5 is required")
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise InvalidInput("Valid rating between 1 and 5 is required")
    if not 1 <= rating <= 5:
        raise InvalidInput("Valid rating between 1 and 5 is required")
    return rating


def _text(data: Dict[str, Any], key: str, label: str) -> str:
    value = str(data.get(key) or "").strip()
    if not value:
        raise InvalidInput(f"Review {label} is required")
    return value


async def _refresh_rating(product_id: int) -> None:
    summary = rating_summary(await fetch_review_ratings(product_id))
    await set_product_rating(product_id, summary["average"], summary["total"])
    product = await fetch_product(product_id)
    if product is not None:
        await cache_product(product)
    _logger.info(
        "Product rating updated | product_id=%s average=%s count=%s", product_id, summary["average"], summary["total"]
    )


async def _own_review(user_id: str, review_id: int) -> Review:
    review = await fetch_review(review_id)
    if review is None:
        raise NotFound("Review not found")
    if review.user_id != user_id:
        raise Forbidden("You can only change your own review")
    return review


async def list_reviews(product_id: int, page: int = 1, limit: int = 10, sort_by: str = "recent") -> Dict[str, Any]:
    if await fetch_product(product_id) is None:
        raise NotFound("Product not found")
    page = max(page, 1)
    limit = max(limit, 1)
    reviews = await fetch_reviews(product_id, sort_by, offset=(page - 1) * limit, limit=limit)
    summary = rating_summary(await fetch_review_ratings(product_id))
    return {
        "reviews": [review_view(review) for review in reviews],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": summary["total"],
            "pages": math.ceil(summary["total"] / limit),
        },
        "summary": summary,
    }


async def create_review(user_id: str, product_id: int, data: Dict[str, Any]) -> int:
    rating = _rating(data.get("rating"))
    title = _text(data, "title", "title")
    description = _text(data, "description", "description")
    if await fetch_product(product_id) is None:
        raise NotFound("Product not found")

    review = await db_create_review({
        "product_id": product_id,
        "user_id": user_id,
        "rating": rating,
        "title": title,
        "description": description,
    })
    _logger.info("Review created | review_id=%s product_id=%s user_id=%s rating=%s", review.id, product_id, user_id, rating)
    await _refresh_rating(product_id)
    return review.id


async def edit_review(user_id: str, review_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    review = await _own_review(user_id, review_id)
    values: Dict[str, Any] = {}
    if "rating" in data:
        values["rating"] = _rating(data["rating"])
    if "title" in data:
        values["title"] = _text(data, "title", "title")
    if "description" in data:
        values["description"] = _text(data, "description", "description")
    if not values:
        raise InvalidInput("Nothing to update")

    updated = await update_review(review_id, values)
    if updated is None:
        raise NotFound("Review not found")
    if "rating" in values:
        await _refresh_rating(review.product_id)
    return review_view(updated)


async def remove_review(user_id: str, review_id: int) -> None:
    review = await _own_review(user_id, review_id)
    if not await db_delete_review(review_id):
        raise NotFound("Review not found")
    _logger.info("Review deleted | review_id=%s product_id=%s", review_id, review.product_id)
    await _refresh_rating(review.product_id)


async def vote(user_id: str, review_id: int, vote_type: Optional[str]) -> Dict[str, Any]:
    if vote_type not in VOTE_TYPES:
        raise InvalidInput("Invalid vote type")
    async with _review_lock(review_id):
        review = await fetch_review(review_id)
        if review is None:
            raise NotFound("Review not found")
        if review.user_id == user_id:
            raise InvalidInput("You cannot vote on your own review")

        tally, user_vote, message = apply_vote(
            VoteTally(dict(review.votes or {}), review.helpful_count, review.unhelpful_count), user_id, vote_type
        )
        await update_review(review_id, {
            "votes": tally.votes,
            "helpful_count": tally.helpful,
            "unhelpful_count": tally.unhelpful,
        })
    _logger.info("Review vote | review_id=%s user_id=%s vote=%s", review_id, user_id, user_vote)
    return {
        "message": message,
        "helpfulCount": tally.helpful,
        "unhelpfulCount": tally.unhelpful,
        "userVote": user_vote,
    }


async def vote_status(user_id: str, review_id: int) -> Dict[str, Any]:
    review = await fetch_review(review_id)
    if review is None:
        raise NotFound("Review not found")
    return {
        "userVote": (review.votes or {}).get(user_id),
        "helpfulCount": review.helpful_count,
        "unhelpfulCount": review.unhelpful_count,
    }
