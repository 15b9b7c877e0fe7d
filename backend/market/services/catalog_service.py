# backend/market/services/catalog_service.py
"""
Catalog collaborator: branches, categories and products.

Only what the inventory core consumes lives here (creation for bootstrap and
tests, lookups, and the unit-price contract). Soft-deleted rows are invisible.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import Branch, Category, Product


def create_branch(name: str, address: str | None = None) -> Branch:
    if not name or not name.strip():
        raise InvalidArgumentError("name required")

    branch = Branch(name=name.strip(), address=address)
    db.session.add(branch)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise InvalidArgumentError("Branch name already exists", details={"name": name})
    return branch


def get_branch(branch_id: int) -> Branch:
    branch = (
        db.session.query(Branch)
        .filter(Branch.id == branch_id, Branch.deleted_at.is_(None))
        .first()
    )
    if branch is None:
        raise NotFoundError("Branch not found", details={"branch_id": branch_id})
    return branch


def create_category(name: str, parent_id: int | None = None) -> Category:
    if not name or not name.strip():
        raise InvalidArgumentError("name required")
    if parent_id is not None:
        parent = db.session.query(Category).filter(
            Category.id == parent_id, Category.deleted_at.is_(None)
        ).first()
        if parent is None:
            raise NotFoundError("Parent category not found", details={"category_id": parent_id})

    category = Category(name=name.strip(), parent_id=parent_id)
    db.session.add(category)
    db.session.commit()
    return category


def create_product(
    name: str,
    price_cents: int,
    barcode: str | None = None,
    category_id: int | None = None,
) -> Product:
    """
    Create a product.

    Raises:
        InvalidArgumentError: missing name, negative or non-integer price,
            duplicate barcode
        NotFoundError: unknown category
    """
    if not name or not name.strip():
        raise InvalidArgumentError("name required")
    if not isinstance(price_cents, int) or isinstance(price_cents, bool):
        raise InvalidArgumentError("price_cents must be an integer")
    if price_cents < 0:
        raise InvalidArgumentError("price_cents must be >= 0", details={"price_cents": price_cents})

    if category_id is not None:
        category = db.session.query(Category).filter(
            Category.id == category_id, Category.deleted_at.is_(None)
        ).first()
        if category is None:
            raise NotFoundError("Category not found", details={"category_id": category_id})

    product = Product(
        name=name.strip(),
        price_cents=price_cents,
        barcode=barcode,
        category_id=category_id,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise InvalidArgumentError("Barcode already exists", details={"barcode": barcode})
    return product


def get_product(product_id: int) -> Product:
    product = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.deleted_at.is_(None))
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def get_product_by_barcode(barcode: str) -> Product:
    product = (
        db.session.query(Product)
        .filter(Product.barcode == barcode, Product.deleted_at.is_(None))
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found", details={"barcode": barcode})
    return product


def get_product_unit_price(product_id: int) -> int:
    """Unit price in cents; the only catalog read the basket needs."""
    return get_product(product_id).price_cents


def list_products(page: int = 1, limit: int = 10, search: str | None = None) -> dict:
    """
    Paged product listing with an optional name search.

    Returns:
        Dict with 'items' (current page) and 'count' (total matches).
    """
    page = max(page or 1, 1)
    limit = min(max(limit or 10, 1), 100)

    base_query = db.session.query(Product).filter(Product.deleted_at.is_(None))
    if search:
        base_query = base_query.filter(Product.name.ilike(f"%{search}%"))

    total = base_query.count()
    products = (
        base_query.order_by(Product.name.asc(), Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [p.to_dict() for p in products],
        "count": total,
    }
