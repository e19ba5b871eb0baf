from quart import request

from .config import settings
from .errors import Forbidden, Unauthorized


def current_user_id() -> str:
    # Token verification happens upstream; it forwards the resolved user id
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        raise Unauthorized("Authentication required")
    return user_id


def require_admin() -> str:
    email = request.headers.get("X-Admin-Email", "").strip().lower()
    if not email:
        raise Unauthorized("Admin authentication required")
    if email not in settings.ADMIN_EMAILS:
        raise Forbidden("Not an authorized admin")
    return email
