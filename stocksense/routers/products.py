from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stocksense.dependencies import get_db, get_services, require_company
from stocksense.routers.errors import service_errors
from stocksense.schemas.movement import MovementCreate, MovementHistory, MovementResult
from stocksense.schemas.product import ProductCreate, ProductDetail, ProductPage, ProductUpdate
from stocksense.schemas.rfid import RfidEntryRequest, RfidEntryResult
from stocksense.services.container import InventoryServices
from stocksense.services.movement_service import list_movements, register_manual
from stocksense.services.product_service import (
    build_product_detail,
    create_product,
    delete_product,
    get_product,
    list_by_status,
    list_general,
    search_by_name,
    update_product,
)

router = APIRouter(prefix="/inventory/products", tags=["Products"])


@router.post("", status_code=201)
def create(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
):
    with service_errors():
        product = create_product(db, company_id, payload)
    return {"message": "Product created", "product_id": str(product.id)}


@router.get("", response_model=ProductPage)
def get_by_status(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return list_by_status(
            db,
            company_id,
            status,
            page=page,
            limit=limit,
            window_days=services.settings.EXPIRING_WINDOW_DAYS,
        )


@router.get("/general", response_model=ProductPage)
def get_general(
    category: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return list_general(
            db,
            company_id,
            category_id=category,
            page=page,
            limit=limit,
            window_days=services.settings.EXPIRING_WINDOW_DAYS,
        )


@router.get("/search")
def search(
    name: Optional[str] = Query(None),
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return search_by_name(
            db,
            company_id,
            name,
            limit=limit,
            offset=offset,
            window_days=services.settings.EXPIRING_WINDOW_DAYS,
        )


@router.get("/{product_id}", response_model=ProductDetail)
def get_one(
    product_id: str,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        product = get_product(db, company_id, product_id)
        return build_product_detail(db, product, window_days=services.settings.EXPIRING_WINDOW_DAYS)


@router.patch("/{product_id}")
def update(
    product_id: str,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        product = update_product(db, company_id, product_id, payload)
        return {
            "message": "Product updated",
            "product": build_product_detail(
                db,
                product,
                window_days=services.settings.EXPIRING_WINDOW_DAYS,
            ),
        }


@router.delete("/{product_id}")
def remove(
    product_id: str,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
):
    with service_errors():
        product = delete_product(db, company_id, product_id)
    return {"message": "Product deleted", "product_id": str(product.id)}


@router.post("/{product_id}/movements", response_model=MovementResult)
def create_movement(
    product_id: str,
    payload: MovementCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return register_manual(
            db,
            services.recorder,
            company_id=company_id,
            product_id=product_id,
            movement_type=payload.type,
            quantity=payload.quantity,
            note=payload.note,
        )


@router.get("/{product_id}/movements", response_model=MovementHistory, response_model_exclude_unset=True)
def get_movements(
    product_id: str,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return list_movements(db, company_id, product_id, tz_name=services.settings.DISPLAY_TIMEZONE)


@router.post("/{product_id}/rfid-entry", response_model=RfidEntryResult)
def register_rfid_entries(
    product_id: str,
    payload: Optional[RfidEntryRequest] = None,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return services.rfid.register_entries(
            db,
            company_id,
            product_id,
            payload.entries if payload else None,
        )

