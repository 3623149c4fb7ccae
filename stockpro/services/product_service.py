from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockpro.config import settings
from stockpro.errors import ConflictError, NotFoundError
from stockpro.models import DEFAULT_CATEGORY, Category, Product
from stockpro.schemas import ProductCreate, ProductUpdate


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def list_categories(db: Session) -> list[Category]:
    return db.execute(select(Category).order_by(Category.name.asc())).scalars().all()


def resolve_category(db: Session, *, category_id: int | None, category_name: str | None) -> tuple[str, int | None]:
    if category_id:
        category = db.get(Category, category_id)
        if category:
            return category.name, category.id
    if category_name and category_name.strip():
        return category_name.strip(), None
    return DEFAULT_CATEGORY, None


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFoundError(f'Produit {product_id} introuvable', details={'product_id': product_id})
    return product


def ensure_ref_available(db: Session, ref: str, *, exclude_product_id: int | None = None) -> None:
    query = select(Product.id).where(Product.ref == ref)
    if exclude_product_id is not None:
        query = query.where(Product.id != exclude_product_id)
    if db.execute(query).first():
        raise ConflictError(f"La référence produit '{ref}' existe déjà", details={'ref': ref})


def list_products(db: Session, *, page: int = 1, per_page: int | None = None) -> dict:
    per_page = per_page or settings.default_page_size
    page = max(page, 1)
    total = db.execute(select(func.count(Product.id))).scalar_one()
    items = db.execute(
        select(Product).order_by(Product.id.desc()).offset((page - 1) * per_page).limit(per_page)
    ).scalars().all()
    return {
        'items': [product_to_dict(product) for product in items],
        'total': total,
        'per_page': per_page,
        'current_page': page,
        'last_page': max(1, -(-total // per_page)),
    }


def list_critical_products(db: Session) -> list[Product]:
    return db.execute(
        select(Product)
        .where(Product.quantity <= Product.critical_level)
        .order_by(Product.quantity.asc(), Product.name.asc())
    ).scalars().all()


def create_product(db: Session, payload: ProductCreate) -> Product:
    if payload.ref:
        ensure_ref_available(db, payload.ref)

    category_name, category_id = resolve_category(db, category_id=payload.category_id, category_name=payload.category)
    data = payload.model_dump(exclude={'category', 'category_id', 'critical_level'})
    product = Product(
        **data,
        category=category_name,
        category_id=category_id,
        critical_level=(
            payload.critical_level if payload.critical_level is not None else settings.default_critical_level
        ),
    )
    db.add(product)
    db.flush()
    return product


def find_or_create_by_name(
    db: Session,
    *,
    name: str,
    ref: str | None,
    category_id: int | None,
    category_name: str | None,
    unit_price: Decimal | None,
) -> Product:
    clean_name = name.strip()
    product = db.execute(select(Product).where(Product.name == clean_name)).scalars().first()
    if product:
        return product

    if ref:
        ensure_ref_available(db, ref)
    resolved_name, resolved_id = resolve_category(db, category_id=category_id, category_name=category_name)
    product = Product(
        ref=ref or None,
        name=clean_name,
        category=resolved_name,
        category_id=resolved_id,
        quantity=0,
        price=unit_price or Decimal('0'),
        critical_level=settings.default_critical_level,
    )
    db.add(product)
    db.flush()
    return product


def update_product(db: Session, *, product_id: int, payload: ProductUpdate) -> Product:
    product = get_product(db, product_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get('ref'):
        ensure_ref_available(db, changes['ref'], exclude_product_id=product.id)
    if 'category_id' in changes:
        category_name, category_id = resolve_category(
            db,
            category_id=changes.pop('category_id'),
            category_name=changes.pop('category', None) or product.category,
        )
        changes['category'] = category_name
        changes['category_id'] = category_id

    for key, value in changes.items():
        setattr(product, key, value)
    product.updated_at = _now()
    db.flush()
    return product


def delete_product(db: Session, *, product_id: int) -> None:
    product = get_product(db, product_id)
    db.delete(product)
    db.flush()


def product_to_dict(product: Product) -> dict:
    return {
        'id': product.id,
        'ref': product.ref,
        'name': product.name,
        'category': product.category,
        'category_id': product.category_id,
        'unit': product.unit,
        'quantity': product.quantity,
        'price': float(product.price),
        'critical_level': product.critical_level,
        'supplier': product.supplier,
        'acquirer': product.acquirer,
        'beneficiary': product.beneficiary,
        'acquired_at': product.acquired_at,
        'description': product.description,
        'is_critical': product.quantity <= product.critical_level,
    }
