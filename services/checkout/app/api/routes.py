from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from app.infrastructure.db import get_store
from app.infrastructure.order_store import OrderStore
from app.application.service import OrderQueryService, OrderRecorder, PersistenceUnavailable
from app.application.schemas import Order, RecordOrder, RecordOrderResponse
from app.domain.errors import OrderNotFoundError, OrderStoreError

router = APIRouter(tags=["orders"])

@router.post("/orders", response_model=RecordOrderResponse, status_code=202)
def record_order(payload: RecordOrder, store: Optional[OrderStore] = Depends(get_store)):
    """Record a placed order. Persistence is best-effort and never fails the call."""
    persisted = OrderRecorder(store).record(
        payload.request, payload.result, payload.total_amount
    )
    return RecordOrderResponse(order_id=payload.result.order_id, persisted=persisted)

@router.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: str, store: Optional[OrderStore] = Depends(get_store)):
    try:
        return OrderQueryService(store).get(order_id)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except OrderStoreError:
        raise HTTPException(status_code=503, detail="Order storage unavailable")

@router.get("/users/{user_id}/orders", response_model=list[Order])
def list_user_orders(user_id: str, store: Optional[OrderStore] = Depends(get_store)):
    """Orders of a user, newest first."""
    try:
        return OrderQueryService(store).list_for_user(user_id)
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except OrderStoreError:
        raise HTTPException(status_code=503, detail="Order storage unavailable")
