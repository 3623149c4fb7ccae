from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse

from stockpro.models import PendingOperation


def creation_response(entity_id: int | None, operation: PendingOperation | None) -> JSONResponse:
    if operation is not None:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={
                'pending_operation_id': operation.id,
                'status': operation.status.value,
                'message': "Demande soumise pour approbation",
            },
        )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content={'id': entity_id})
