"""Catalog search scoped to a tenant's active, in-stock products."""

import re
from typing import Optional
from uuid import UUID

from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatdesk.database import dialect_name
from chatdesk.logging_config import get_logger
from chatdesk.models import Product
from chatdesk.services.template_service import format_price

logger = get_logger("product_search")

SEARCH_LIMIT = 10
SIMILARITY_THRESHOLD = 0.1
DEFAULT_CATEGORY = "Products"
MIN_TERM_LENGTH = 3


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _base_query(db: Session, tenant_id: UUID, category: Optional[str]):
    query = db.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.is_active.is_(True),
        Product.in_stock.is_(True),
    )
    if category:
        query = query.filter(func.lower(Product.category) == category.strip().lower())
    return query


def _trigram_search(base, text: str, limit: int) -> list[Product]:
    score = func.greatest(
        func.similarity(Product.name, text),
        func.similarity(func.coalesce(Product.description, ""), text),
    )
    return base.filter(score > SIMILARITY_THRESHOLD).order_by(score.desc(), Product.name.asc()).limit(limit).all()


def _substring_search(base, text: str, limit: int) -> list[Product]:
    pattern = f"%{_escape_like(text)}%"
    rows = (
        base.filter(
            or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.description.ilike(pattern, escape="\\"),
            )
        )
        .order_by(Product.name.asc())
        .limit(limit)
        .all()
    )
    if rows:
        return rows

    terms = [t for t in re.findall(r"\w+", text.lower()) if len(t) >= MIN_TERM_LENGTH]
    if not terms:
        return []
    clauses = []
    for term in terms:
        term_pattern = f"%{_escape_like(term)}%"
        clauses.extend(
            [
                Product.name.ilike(term_pattern, escape="\\"),
                Product.description.ilike(term_pattern, escape="\\"),
                Product.category.ilike(term_pattern, escape="\\"),
                cast(Product.keywords, String).ilike(term_pattern, escape="\\"),
            ]
        )
    return base.filter(or_(*clauses)).order_by(Product.name.asc()).limit(limit).all()


def search_products(
    db: Session,
    tenant_id: UUID,
    text: Optional[str],
    *,
    category: Optional[str] = None,
    limit: int = SEARCH_LIMIT,
) -> list[Product]:
    """Fuzzy product search: trigram similarity on PostgreSQL, substring/keyword match otherwise."""
    base = _base_query(db, tenant_id, category)
    text = (text or "").strip()
    if not text:
        return base.order_by(Product.name.asc()).limit(limit).all()

    if dialect_name(db) == "postgresql":
        try:
            with db.begin_nested():
                rows = _trigram_search(base, text, limit)
            if rows:
                return rows
        except SQLAlchemyError as e:
            # pg_trgm missing
            logger.warning("Trigram search failed, using substring search", extra={"context": {"error": str(e)}})

    return _substring_search(base, text, limit)


def get_product_by_retailer_id(db: Session, tenant_id: UUID, retailer_id: str) -> Optional[Product]:
    if not retailer_id:
        return None
    return (
        db.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
            func.lower(Product.retailer_id) == retailer_id.strip().lower(),
        )
        .first()
    )


def looks_like_retailer_id(text: Optional[str]) -> bool:
    """Single token such as SKU-123 or a list row id."""
    return bool(text) and re.fullmatch(r"[\w.\-]+", text.strip()) is not None


def format_product_card(product: Product) -> str:
    lines = [f"*{product.name}*"]
    if product.price is not None:
        lines.append(f"{product.currency or 'USD'} {format_price(product.price)}")
    lines.append("In Stock" if product.in_stock else "Out of Stock")
    if product.description:
        lines.append("")
        lines.append(product.description)
    return "\n".join(lines)


def build_product_sections(products: list[Product]) -> list[dict]:
    """Group products into list sections by category, preserving search order."""
    sections: dict[str, list[dict]] = {}
    for product in products[:SEARCH_LIMIT]:
        category = product.category or DEFAULT_CATEGORY
        description = f"{product.currency or 'USD'} {format_price(product.price)}"
        if product.description:
            description += f" - {product.description[:48]}"
        sections.setdefault(category, []).append(
            {"id": product.retailer_id, "title": product.name[:24], "description": description[:72]}
        )
    return [{"title": title[:24], "rows": rows} for title, rows in sections.items()]
