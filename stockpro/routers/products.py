from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from stockpro.auth import Permission, Principal, get_current_principal, require_permission
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip
from stockpro.schemas import ProductCreate, ProductUpdate
from stockpro.services.audit_service import log_audit
from stockpro.services.product_service import (
    create_product,
    delete_product,
    list_categories,
    list_critical_products,
    list_products,
    product_to_dict,
    update_product,
)

router = APIRouter(prefix='/api', tags=['products'])
stock_access = require_permission(Permission.STOCK)


@router.get('/categories')
def categories(db: Session = Depends(get_db)):
    return [{'id': category.id, 'name': category.name} for category in list_categories(db)]


@router.get('/products')
def products(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1, le=500),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_products(db, page=page, per_page=per_page)


@router.get('/products/alerts')
def product_alerts(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [product_to_dict(product) for product in list_critical_products(db)]


@router.post('/products', status_code=status.HTTP_201_CREATED)
def product_create(
    payload: ProductCreate,
    request: Request,
    principal: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    product = create_product(db, payload)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='PRODUCT_CREATED',
        ip=get_client_ip(request),
        metadata={'product_id': product.id, 'name': product.name},
    )
    db.commit()
    return {'id': product.id}


@router.put('/products/{product_id}')
def product_update(
    product_id: int,
    payload: ProductUpdate,
    principal: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    product = update_product(db, product_id=product_id, payload=payload)
    db.commit()
    return product_to_dict(product)


@router.delete('/products/{product_id}')
def product_delete(
    product_id: int,
    request: Request,
    principal: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    delete_product(db, product_id=product_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='PRODUCT_DELETED',
        ip=get_client_ip(request),
        metadata={'product_id': product_id},
    )
    db.commit()
    return {'deleted': True}
