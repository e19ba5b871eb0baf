from datetime import datetime
from typing import Optional, Dict, Any, List, Iterable, Tuple

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from .config import settings
from .db import Base, utcnow
from ..categories.model import Category
from ..inventory.model import Product
from ..cart.model import Cart
from ..wishlist.model import Wishlist
from ..orders.model import Order, Payment
from ..reviews.model import Review


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, future=True, echo=False)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db(seed: bool = True) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if not seed:
        return

    # Seed a few products if table is empty
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(sa.func.count(Product.id)))
        count = int(res.scalar() or 0)
        if count == 0:
            products: List[Product] = [
                Product(id=1, name="Widget", stock=100, price=9.99, image_url="https://picsum.photos/seed/widget/400/300"),
                Product(id=2, name="Gadget", stock=50, price=14.99, discount_percentage=10, image_url="https://picsum.photos/seed/gadget/400/300"),
                Product(id=3, name="Thingamajig", stock=5, price=19.99, image_url="https://picsum.photos/seed/thing/400/300"),
            ]
            session.add_all(products)
            await session.commit()


def product_dict(prod: Product) -> Dict[str, Any]:
    return {
        "id": prod.id,
        "name": prod.name,
        "title": prod.title,
        "description": prod.description,
        "brand": prod.brand,
        "category_id": prod.category_id,
        "stock": prod.stock,
        "price": prod.price,
        "discount_percentage": prod.discount_percentage,
        "is_active": prod.is_active,
        "image_url": prod.image_url,
        "average_rating": prod.average_rating,
        "review_count": prod.review_count,
    }


# ---- products ----

async def fetch_product(product_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        prod = await session.get(Product, product_id)
        if not prod:
            return None
        return product_dict(prod)


def _matches(term: str, *columns):
    return sa.or_(*(col.icontains(term, autoescape=True) for col in columns))


async def fetch_products(
    is_active: Optional[bool] = True,
    search: Optional[str] = None,
    category_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """List products by id; ``is_active=None`` returns active and inactive alike."""
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product).order_by(Product.id)
        if is_active is not None:
            stmt = stmt.where(Product.is_active.is_(is_active))
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        if search:
            stmt = stmt.where(_matches(search, Product.name, Product.title))
        res = await session.execute(stmt)
        return [product_dict(prod) for prod in res.scalars().all()]


async def search_products(term: str) -> List[Dict[str, Any]]:
    """Active products whose name, title, brand or description contain ``term``."""
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Product)
            .where(Product.is_active.is_(True))
            .where(_matches(term, Product.name, Product.title, Product.brand, Product.description))
            .order_by(Product.id)
        )
        res = await session.execute(stmt)
        return [product_dict(prod) for prod in res.scalars().all()]


async def product_name_taken(name: str, exclude_id: Optional[int] = None) -> bool:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product.id).where(sa.func.lower(Product.name) == name.strip().lower())
        if exclude_id is not None:
            stmt = stmt.where(Product.id != exclude_id)
        res = await session.execute(stmt)
        return res.first() is not None


async def create_product(fields: Dict[str, Any]) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = Product(**fields)
            session.add(prod)
            await session.flush()  # assign PK
        return product_dict(prod)


async def update_product(product_id: int, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = await session.get(Product, product_id)
            if prod is None:
                return None
            for key, value in values.items():
                setattr(prod, key, value)
        return product_dict(prod)


async def set_product_rating(product_id: int, average: float, count: int) -> None:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.update(Product)
            .where(Product.id == product_id)
            .values(average_rating=average, review_count=count)
        )
        await session.execute(stmt)
        await session.commit()


async def fetch_products_by_ids(product_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
    ids = list(set(product_ids))
    if not ids:
        return {}
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Product).where(Product.id.in_(ids)))
        return {prod.id: product_dict(prod) for prod in res.scalars().all()}


async def get_product_stock(product_id: int) -> Optional[int]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product.stock).where(Product.id == product_id)
        res = await session.execute(stmt)
        row = res.first()
        return int(row[0]) if row else None


async def update_product_stock(product_id: int, new_stock: int) -> bool:
    async with AsyncSessionLocal() as session:
        stmt = sa.update(Product).where(Product.id == product_id).values(stock=new_stock)
        res = await session.execute(stmt)
        await session.commit()
        return (res.rowcount or 0) > 0


async def try_reserve_stock(product_id: int, quantity: int) -> bool:
    """Atomically decrement stock if available. Returns True on success."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(Product)
                .where(Product.id == product_id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity)
            )
            res = await session.execute(stmt)
            updated = res.rowcount or 0
        return updated > 0


# ---- carts ----

async def fetch_cart_items(user_id: str) -> Optional[List[Dict[str, Any]]]:
    """Return the stored line items, or None when the user has no cart."""
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Cart.items).where(Cart.user_id == user_id))
        row = res.first()
        return list(row[0] or []) if row else None


async def save_cart(user_id: str, items: List[Dict[str, Any]]) -> None:
    """Rewrite the whole cart document, creating it on first write."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.select(Cart).where(Cart.user_id == user_id))
            cart = res.scalar_one_or_none()
            if cart is None:
                session.add(Cart(user_id=user_id, items=list(items)))
            else:
                cart.items = list(items)


async def delete_cart(user_id: str) -> bool:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.delete(Cart).where(Cart.user_id == user_id))
        await session.commit()
        return (res.rowcount or 0) > 0


# ---- wishlists ----

async def fetch_wishlist_items(user_id: str) -> Optional[List[Dict[str, Any]]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Wishlist.items).where(Wishlist.user_id == user_id))
        row = res.first()
        return list(row[0] or []) if row else None


async def save_wishlist(user_id: str, items: List[Dict[str, Any]]) -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.select(Wishlist).where(Wishlist.user_id == user_id))
            wishlist = res.scalar_one_or_none()
            if wishlist is None:
                session.add(Wishlist(user_id=user_id, items=list(items)))
            else:
                wishlist.items = list(items)


# ---- orders ----

async def count_orders(customer_id: Optional[str] = None, status: Optional[str] = None) -> int:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(sa.func.count(Order.id))
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        res = await session.execute(stmt)
        return int(res.scalar() or 0)


async def create_order_with_payment(order_fields: Dict[str, Any], payment_fields: Dict[str, Any]) -> Tuple[Order, Payment]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = Order(**order_fields)
            session.add(order)
            await session.flush()  # assign PK
            payment = Payment(order_id=order.id, **payment_fields)
            session.add(payment)
        return order, payment


async def fetch_order(order_id: int, customer_id: Optional[str] = None) -> Optional[Order]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).where(Order.id == order_id)
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()


async def fetch_orders(
    customer_id: Optional[str] = None,
    status: Optional[str] = None,
    offset: int = 0,
    limit: Optional[int] = None,
) -> List[Order]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await session.execute(stmt)
        return list(res.scalars().all())


async def update_order(order_id: int, values: Dict[str, Any]) -> Optional[Order]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = await session.get(Order, order_id)
            if order is None:
                return None
            for key, value in values.items():
                setattr(order, key, value)
            order.modified_at = utcnow()
        return order


async def fetch_payment(order_id: int) -> Optional[Payment]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Payment).where(Payment.order_id == order_id))
        return res.scalar_one_or_none()


async def complete_payment(order_id: int) -> Tuple[Optional[Order], bool]:
    """Mark the order's payment completed and confirm the order.

    Returns ``(order, completed)``. Orders already paid or cancelled are
    left untouched and come back with ``completed`` False.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = await session.get(Order, order_id)
            if order is None:
                return None, False
            if order.payment_status == "paid" or order.status == "cancelled":
                return order, False
            res = await session.execute(sa.select(Payment).where(Payment.order_id == order_id))
            payment = res.scalar_one_or_none()
            now = utcnow()
            if payment is not None:
                payment.status = "completed"
                payment.paid_at = now
            order.payment_status = "paid"
            order.status = "confirmed"
            order.modified_at = now
        return order, True


# ---- reviews ----

_REVIEW_ORDER = {
    "recent": (Review.created_at.desc(), Review.id.desc()),
    "helpful": (Review.helpful_count.desc(), Review.created_at.desc(), Review.id.desc()),
    "rating_high": (Review.rating.desc(), Review.created_at.desc(), Review.id.desc()),
    "rating_low": (Review.rating.asc(), Review.created_at.desc(), Review.id.desc()),
}


async def create_review(fields: Dict[str, Any]) -> Review:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            review = Review(**fields)
            session.add(review)
            await session.flush()  # assign PK
        return review


async def fetch_review(review_id: int) -> Optional[Review]:
    async with AsyncSessionLocal() as session:
        return await session.get(Review, review_id)


async def fetch_reviews(product_id: int, sort_by: str = "recent", offset: int = 0, limit: Optional[int] = None) -> List[Review]:
    """Approved reviews for a product; unknown ``sort_by`` values sort by most recent."""
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Review)
            .where(Review.product_id == product_id, Review.is_approved.is_(True))
            .order_by(*_REVIEW_ORDER.get(sort_by, _REVIEW_ORDER["recent"]))
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await session.execute(stmt)
        return list(res.scalars().all())


async def fetch_review_ratings(product_id: int) -> List[int]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Review.rating).where(Review.product_id == product_id, Review.is_approved.is_(True))
        res = await session.execute(stmt)
        return [int(rating) for rating in res.scalars().all()]


async def update_review(review_id: int, values: Dict[str, Any]) -> Optional[Review]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            review = await session.get(Review, review_id)
            if review is None:
                return None
            for key, value in values.items():
                setattr(review, key, value)
            review.modified_at = utcnow()
        return review


async def delete_review(review_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.delete(Review).where(Review.id == review_id))
        await session.commit()
        return (res.rowcount or 0) > 0


# ---- categories ----

def category_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "is_active": category.is_active,
        "display_order": category.display_order,
    }


async def fetch_categories(active_only: bool = True) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Category).order_by(Category.display_order, Category.name)
        if active_only:
            stmt = stmt.where(Category.is_active.is_(True))
        res = await session.execute(stmt)
        return [category_dict(category) for category in res.scalars().all()]


async def fetch_category(category_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        category = await session.get(Category, category_id)
        return category_dict(category) if category else None


async def fetch_category_by_slug(slug: str) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Category).where(Category.slug == slug))
        category = res.scalar_one_or_none()
        return category_dict(category) if category else None


async def category_slug_taken(slug: str, exclude_id: Optional[int] = None) -> bool:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Category.id).where(Category.slug == slug)
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        res = await session.execute(stmt)
        return res.first() is not None


async def count_products_by_category() -> Dict[int, int]:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Product.category_id, sa.func.count(Product.id))
            .where(Product.category_id.is_not(None))
            .group_by(Product.category_id)
        )
        res = await session.execute(stmt)
        return {int(category_id): int(count) for category_id, count in res.all()}


async def create_category(fields: Dict[str, Any]) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            category = Category(**fields)
            session.add(category)
            await session.flush()  # assign PK
        return category_dict(category)


async def update_category(category_id: int, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            category = await session.get(Category, category_id)
            if category is None:
                return None
            for key, value in values.items():
                setattr(category, key, value)
        return category_dict(category)


async def delete_category(category_id: int) -> Optional[int]:
    """Delete a category and detach its products. Returns how many were detached, None if absent."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            category = await session.get(Category, category_id)
            if category is None:
                return None
            res = await session.execute(
                sa.update(Product).where(Product.category_id == category_id).values(category_id=None)
            )
            await session.delete(category)
        return res.rowcount or 0


# ---- admin analytics ----

async def fetch_orders_since(since: datetime) -> List[Order]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).where(Order.created_at >= since).order_by(Order.created_at)
        res = await session.execute(stmt)
        return list(res.scalars().all())


async def fetch_low_stock(threshold: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Product)
            .where(Product.is_active.is_(True), Product.stock <= threshold)
            .order_by(Product.stock, Product.id)
        )
        res = await session.execute(stmt)
        return [product_dict(prod) for prod in res.scalars().all()]


def _customer_stats_query():
    paid_total = sa.func.sum(sa.case((Order.payment_status == "paid", Order.total), else_=0))
    return sa.select(
        Order.customer_id,
        sa.func.count(Order.id).label("orders"),
        paid_total.label("spent"),
        sa.func.max(Order.created_at).label("last_order_at"),
    ).group_by(Order.customer_id)


async def fetch_customer_stats(offset: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Per-customer order count, paid total and last order time, most recent buyers first."""
    async with AsyncSessionLocal() as session:
        stmt = _customer_stats_query().order_by(sa.desc("last_order_at"), Order.customer_id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await session.execute(stmt)
        return [dict(row._mapping) for row in res.all()]


async def fetch_customer_stat(customer_id: str) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(_customer_stats_query().where(Order.customer_id == customer_id))
        row = res.first()
        return dict(row._mapping) if row else None


async def count_customers() -> int:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(sa.func.count(sa.distinct(Order.customer_id))))
        return int(res.scalar() or 0)
