from quart import Blueprint, jsonify, request

from .service import list_reviews, create_review, edit_review, remove_review, vote, vote_status
from ..common.auth import current_user_id
from ..common.params import int_param, json_body

bp = Blueprint("reviews", __name__)


@bp.get("/products/<int:product_id>/reviews")
async def reviews_list(product_id: int):
    page = int_param(request.args, "page", 1)
    limit = int_param(request.args, "limit", 10)
    sort_by = request.args.get("sortBy") or "recent"
    return jsonify({"ok": True, **await list_reviews(product_id, page, limit, sort_by)})


@bp.post("/products/<int:product_id>/reviews")
async def review_create(product_id: int):
    user_id = current_user_id()
    review_id = await create_review(user_id, product_id, await json_body())
    return jsonify({"ok": True, "message": "Review submitted successfully", "reviewId": review_id}), 201


@bp.patch("/reviews/<int:review_id>")
async def review_update(review_id: int):
    user_id = current_user_id()
    review = await edit_review(user_id, review_id, await json_body())
    return jsonify({"ok": True, "message": "Review updated successfully", "review": review})


@bp.delete("/reviews/<int:review_id>")
async def review_delete(review_id: int):
    await remove_review(current_user_id(), review_id)
    return jsonify({"ok": True, "message": "Review deleted successfully"})


@bp.post("/reviews/<int:review_id>/vote")
async def review_vote(review_id: int):
    user_id = current_user_id()
    data = await json_body()
    return jsonify({"ok": True, **await vote(user_id, review_id, data.get("voteType"))})


@bp.get("/reviews/<int:review_id>/vote")
async def review_vote_status(review_id: int):
    return jsonify({"ok": True, **await vote_status(current_user_id(), review_id)})
