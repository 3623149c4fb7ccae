from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockpro.auth import Permission, Principal, require_permission
from stockpro.db import get_db
from stockpro.services.report_service import dashboard_stats

router = APIRouter(prefix='/api', tags=['stats'])


@router.get('/stats')
def stats(_: Principal = Depends(require_permission(Permission.STOCK)), db: Session = Depends(get_db)):
    return dashboard_stats(db)
