"""
Order endpoints — history, detail, tracker and operational status changes.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from deps import Pagination, get_order_store, pagination_params, require_staff
from domain.enums import UserRole
from domain.errors import NotFoundError, PermissionDeniedError
from domain.responses import paginated_response, success_response
from middleware.auth import Caller, require_caller
from services import order_service
from services.order_store import OrderStore
from services.status_projection import project_status
from utils.validators import validated_order_id

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


class StatusChangeRequest(BaseModel):
    status: str = Field(..., min_length=1, max_length=20)


async def _load_visible_order(store: OrderStore, order_id: str, caller: Caller):
    order = await store.get(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    if order.user_id != caller.user_id and not caller.is_staff:
        # Same answer as a missing order so ids cannot be probed
        raise NotFoundError("Order", order_id)
    return order


@router.get("")
async def list_my_orders(
    caller: Caller = Depends(require_caller),
    page: Pagination = Depends(pagination_params),
    store: OrderStore = Depends(get_order_store),
):
    orders = await store.list_for_user(caller.user_id, limit=page["limit"], offset=page["offset"])
    return paginated_response(
        [order_service.serialize_order(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
    )


@router.get("/{order_id}")
async def get_order(
    order_id: str = Depends(validated_order_id),
    caller: Caller = Depends(require_caller),
    store: OrderStore = Depends(get_order_store),
):
    order = await _load_visible_order(store, order_id, caller)
    items = await store.get_items(order_id)
    return success_response(data=order_service.serialize_order(order, items))


@router.get("/{order_id}/tracker")
async def get_order_tracker(
    order_id: str = Depends(validated_order_id),
    caller: Caller = Depends(require_caller),
    store: OrderStore = Depends(get_order_store),
):
    order = await _load_visible_order(store, order_id, caller)
    return success_response(data=project_status(order.status).as_dict())


@router.patch("/{order_id}/status")
async def change_order_status(
    request: StatusChangeRequest,
    order_id: str = Depends(validated_order_id),
    caller: Caller = Depends(require_staff),
    store: OrderStore = Depends(get_order_store),
):
    """Shop owner / driver / admin moves an order along the state machine."""
    if caller.role == UserRole.SHOP_OWNER.value and not caller.shop_id:
        raise PermissionDeniedError("Shop owner token is missing its shop_id claim.")

    order = await order_service.change_status(
        store,
        order_id,
        request.status,
        actor_id=caller.user_id,
        role=caller.role,
        shop_id=caller.shop_id,
    )
    return success_response(data=order_service.serialize_order(order))
