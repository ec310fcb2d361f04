from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from academy.admin import service as admin_service
from academy.admin.schemas import AdminRefundRequest, CancelRequest
from academy.utils.security import require_admin

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])

# module academy.admin.views
@router.get("/orders")
def list_orders(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: Dict[str, Any] = Depends(require_admin),
):
    return {"orders": admin_service.list_orders(status=status, limit=limit, offset=offset)}

@router.get("/orders/{order_id}")
def get_order(order_id: str, user: Dict[str, Any] = Depends(require_admin)):
    return admin_service.get_order(order_id)

@router.post("/orders/{order_id}/refund")
def refund_order(order_id: str, req: AdminRefundRequest, user: Dict[str, Any] = Depends(require_admin)):
    result = admin_service.refund_order(order_id, user, amount=req.amount, reason=req.reason)
    return {"status": "ok", "order_number": result["order"].get("order_number"), "refund": result["refund"]}

@router.post("/orders/{order_id}/cancel")
def cancel_order(order_id: str, req: CancelRequest, user: Dict[str, Any] = Depends(require_admin)):
    order = admin_service.cancel_order(order_id, req.reason)
    return {"status": "ok", "order_status": order.get("status")}

@router.post("/orders/{order_id}/fulfill")
def refulfill_order(order_id: str, user: Dict[str, Any] = Depends(require_admin)):
    """Relance transaction/facture/inscriptions/email après un échec partiel."""
    result = admin_service.refulfill_order(order_id)
    return {"status": "ok", "fulfillment": result["status"], "errors": result["errors"]}

@router.delete("/orders/{order_id}")
def delete_order(order_id: str, user: Dict[str, Any] = Depends(require_admin)):
    admin_service.delete_order(order_id)
    return {"status": "ok"}
