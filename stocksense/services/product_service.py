from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stocksense.core.constants import (
    NEAR_MINIMUM_MARGIN,
    PRODUCT_STATUSES,
    SENSOR_RFID,
    SENSOR_TYPES,
)
from stocksense.core.dates import ensure_utc, utcnow
from stocksense.core.exceptions import BadRequestError, ProductNotFound
from stocksense.models.category import Category
from stocksense.models.product import Product
from stocksense.models.stock_entry import StockEntry
from stocksense.models.unit import Unit
from stocksense.schemas.product import ProductCreate, ProductUpdate


def as_number(value) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def get_product(db: Session, company_id: int, product_id, *, include_deleted: bool = False) -> Product:
    try:
        product_id = int(product_id)
    except (TypeError, ValueError) as exc:
        raise ProductNotFound(product_id) from exc

    stmt = select(Product).where(
        Product.id == product_id,
        Product.company_id == company_id,
    )
    if not include_deleted:
        stmt = stmt.where(Product.deleted_at.is_(None))
    product = db.execute(stmt).scalars().first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


def _open_entries(product_id: int):
    return and_(StockEntry.product_id == product_id, StockEntry.deleted_at.is_(None))


def soonest_expiration(db: Session, product_id: int) -> Optional[date]:
    stmt = select(func.min(StockEntry.expiration_date)).where(
        _open_entries(product_id),
        StockEntry.expiration_date.is_not(None),
    )
    return db.execute(stmt).scalar()


def _expiring_clause(window_days: int):
    limit_date = date.today() + timedelta(days=window_days)
    return and_(
        Product.sensor_type == SENSOR_RFID,
        exists().where(
            StockEntry.product_id == Product.id,
            StockEntry.deleted_at.is_(None),
            StockEntry.expiration_date.is_not(None),
            StockEntry.expiration_date <= limit_date,
        ),
    )


def has_expiring_entries(db: Session, product: Product, window_days: int) -> bool:
    if product.sensor_type != SENSOR_RFID:
        return False
    limit_date = date.today() + timedelta(days=window_days)
    stmt = select(StockEntry.id).where(
        _open_entries(product.id),
        StockEntry.expiration_date.is_not(None),
        StockEntry.expiration_date <= limit_date,
    ).limit(1)
    return db.execute(stmt).first() is not None


def classify_status(product: Product, *, expiring: bool = False) -> str:
    stock = Decimal(product.stock or 0)
    minimum = Decimal(product.min_stock or 0)

    if expiring:
        return "expiring"
    if stock == 0:
        return "out_of_stock"
    if stock < minimum:
        return "low_stock"
    if minimum <= stock <= minimum + NEAR_MINIMUM_MARGIN:
        return "near_minimum"
    if product.max_stock is not None and stock > Decimal(product.max_stock):
        return "overstock"
    return "all"


def build_product_card(db: Session, product: Product, *, window_days: int = 7) -> dict:
    expiring = has_expiring_entries(db, product, window_days)
    return {
        "id": str(product.id),
        "name": product.name,
        "image_url": product.image_url,
        "stock_actual": as_number(product.stock),
        "stock_minimum": as_number(product.min_stock),
        "stock_maximum": as_number(product.max_stock),
        "sensor_type": product.sensor_type,
        "category": product.category.name if product.category else None,
        "status": classify_status(product, expiring=expiring),
        "is_active": bool(product.is_active),
    }


def build_product_detail(db: Session, product: Product, *, window_days: int = 7) -> dict:
    detail = build_product_card(db, product, window_days=window_days)
    expiration = soonest_expiration(db, product.id)
    detail.update(
        {
            "brand": product.brand or "",
            "description": product.description or "",
            "unit": product.unit.name if product.unit else None,
            "allows_decimals": bool(product.unit and product.unit.allows_decimals),
            "expiration_date": expiration.isoformat() if expiration else None,
            "created_at": ensure_utc(product.created_at),
            "updated_at": ensure_utc(product.updated_at),
        }
    )
    return detail


def _tenant_products(company_id: int):
    return select(Product).where(
        Product.company_id == company_id,
        Product.deleted_at.is_(None),
    )


def _status_query(company_id: int, status: str, window_days: int):
    stmt = _tenant_products(company_id)
    if status == "expiring":
        return stmt.where(_expiring_clause(window_days)).order_by(Product.name.asc())
    if status == "out_of_stock":
        return stmt.where(Product.stock == 0).order_by(Product.updated_at.desc())
    if status == "low_stock":
        return stmt.where(Product.stock < Product.min_stock).order_by(Product.stock.asc())
    if status == "near_minimum":
        return stmt.where(
            Product.stock >= Product.min_stock,
            Product.stock <= Product.min_stock + NEAR_MINIMUM_MARGIN,
        ).order_by((Product.stock - Product.min_stock).asc())
    if status == "overstock":
        return stmt.where(
            Product.max_stock.is_not(None),
            Product.stock > Product.max_stock,
        ).order_by((Product.stock - Product.max_stock).desc())
    return stmt.order_by(Product.name.asc())


def _paginate(db: Session, stmt, page: int, limit: int):
    page = max(1, int(page))
    limit = max(1, min(int(limit), 100))
    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar() or 0
    rows = db.execute(stmt.offset((page - 1) * limit).limit(limit)).unique().scalars().all()
    return rows, total, page, limit


def list_by_status(
    db: Session,
    company_id: int,
    status: Optional[str],
    *,
    page: int = 1,
    limit: int = 10,
    window_days: int = 7,
) -> dict:
    status = (status or "all").strip().lower()
    if status not in PRODUCT_STATUSES:
        raise BadRequestError(
            "Invalid status, expected one of: {}".format(", ".join(PRODUCT_STATUSES))
        )
    rows, total, page, limit = _paginate(db, _status_query(company_id, status, window_days), page, limit)
    return {
        "items": [build_product_card(db, product, window_days=window_days) for product in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def list_general(
    db: Session,
    company_id: int,
    *,
    category_id: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
    window_days: int = 7,
) -> dict:
    stmt = _tenant_products(company_id)
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    stmt = stmt.order_by(Product.name.asc())
    rows, total, page, limit = _paginate(db, stmt, page, limit)
    return {
        "items": [build_product_card(db, product, window_days=window_days) for product in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_by_name(
    db: Session,
    company_id: int,
    name: Optional[str],
    *,
    limit: int = 20,
    offset: int = 0,
    window_days: int = 7,
) -> dict:
    name = (name or "").strip()
    if len(name) < 2:
        raise BadRequestError("The 'name' parameter is required and must be at least 2 characters")
    limit = max(1, min(int(limit), 100))
    offset = max(0, int(offset))

    stmt = (
        _tenant_products(company_id)
        .where(func.lower(Product.name).like("%{}%".format(_escape_like(name.lower())), escape="\\"))
        .order_by(Product.name.asc())
        .offset(offset)
        .limit(limit)
    )
    rows = db.execute(stmt).unique().scalars().all()
    return {
        "results": [build_product_card(db, product, window_days=window_days) for product in rows],
        "limit": limit,
        "offset": offset,
    }


def _resolve_category(db: Session, company_id: int, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None or category.company_id not in (None, company_id):
        raise BadRequestError("Category not found")
    return category


def create_product(db: Session, company_id: int, payload: ProductCreate) -> Product:
    if payload.sensor_type not in SENSOR_TYPES:
        raise BadRequestError("Invalid sensor type")
    category = _resolve_category(db, company_id, payload.category)
    unit = db.get(Unit, payload.unit_type)
    if unit is None:
        raise BadRequestError("Unit not found")
    if payload.stock_max is not None and payload.stock_max < payload.stock_min:
        raise BadRequestError("stock_max must be greater than or equal to stock_min")

    product = Product(
        company_id=company_id,
        name=payload.name.strip(),
        brand=payload.brand,
        description=payload.description,
        min_stock=Decimal(str(payload.stock_min)),
        max_stock=Decimal(str(payload.stock_max)) if payload.stock_max is not None else None,
        sensor_type=payload.sensor_type,
        image_url=payload.image_url,
        stock=Decimal("0"),
        category=category,
        unit=unit,
    )
    try:
        db.add(product)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(product)
    return product


def update_product(db: Session, company_id: int, product_id, changes: ProductUpdate) -> Product:
    product = get_product(db, company_id, product_id)
    values = changes.model_dump(exclude_unset=True)

    if "name" in values and values["name"] is not None:
        product.name = values["name"].strip()
    if "brand" in values and values["brand"] is not None:
        product.brand = values["brand"]
    if "description" in values and values["description"] is not None:
        product.description = values["description"]
    if "image_url" in values:
        product.image_url = values["image_url"]
    if values.get("category") is not None:
        product.category = _resolve_category(db, company_id, values["category"])
    if values.get("stock_minimum") is not None:
        product.min_stock = Decimal(str(values["stock_minimum"]))
    if "stock_maximum" in values:
        maximum = values["stock_maximum"]
        product.max_stock = Decimal(str(maximum)) if maximum is not None else None

    if product.max_stock is not None and Decimal(product.max_stock) < Decimal(product.min_stock):
        db.rollback()
        raise BadRequestError("stock_maximum must be greater than or equal to stock_minimum")

    product.updated_at = utcnow()
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(product)
    return product


def delete_product(db: Session, company_id: int, product_id) -> Product:
    """Soft delete. Movement history is left untouched."""
    product = get_product(db, company_id, product_id)
    product.deleted_at = utcnow()
    product.is_active = False
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return product


def _summary_item(product: Product, **extra) -> dict:
    item = {
        "name": product.name,
        "stock_actual": as_number(product.stock),
        "sensor_type": product.sensor_type,
    }
    item.update(extra)
    return item


def home_summary(db: Session, company_id: int, *, window_days: int = 7, limit: int = 5) -> dict:
    limit_date = date.today() + timedelta(days=window_days)
    expiring_rows = db.execute(
        select(StockEntry)
        .join(Product, Product.id == StockEntry.product_id)
        .where(
            Product.company_id == company_id,
            Product.deleted_at.is_(None),
            StockEntry.deleted_at.is_(None),
            StockEntry.expiration_date.is_not(None),
            StockEntry.expiration_date <= limit_date,
        )
        .order_by(StockEntry.expiration_date.asc())
        .limit(limit)
    ).unique().scalars().all()

    def _bucket(status):
        stmt = _status_query(company_id, status, window_days).limit(limit)
        return db.execute(stmt).unique().scalars().all()

    return {
        "message": "Summary loaded",
        "expiring": [
            _summary_item(
                entry.product,
                expiration_date=entry.expiration_date.isoformat(),
                image_url=entry.product.image_url,
            )
            for entry in expiring_rows
        ],
        "out_of_stock": [
            _summary_item(product, image_url=product.image_url) for product in _bucket("out_of_stock")
        ],
        "low_stock": [
            _summary_item(product, stock_minimum=as_number(product.min_stock))
            for product in _bucket("low_stock")
        ],
        "near_minimum": [
            _summary_item(product, stock_minimum=as_number(product.min_stock))
            for product in _bucket("near_minimum")
        ],
        "overstock": [
            _summary_item(product, stock_maximum=as_number(product.max_stock))
            for product in _bucket("overstock")
        ],
        "all": [
            _summary_item(product, image_url=product.image_url) for product in _bucket("all")
        ],
    }

