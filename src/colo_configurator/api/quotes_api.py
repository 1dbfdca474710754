"""
Quotes API - FastAPI routers for the quote, configuration and order flow.
"""
import warnings
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from ..engine.models import Order, Quote
from ..services.errors import ConfiguratorError, NotFoundError, PreconditionError, ValidationFailedError
from ..services.quote_service import QuoteService, quote_to_frame
from .state import get_service

router = APIRouter(prefix="/api/quotes", tags=["quotes"])
orders_router = APIRouter(prefix="/api/orders", tags=["orders"])


def http_error(exc: ConfiguratorError) -> HTTPException:
    """Map a service error onto the HTTP status the client sees."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationFailedError):
        return HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors})
    if isinstance(exc, PreconditionError):
        if exc.incomplete_items:
            return HTTPException(
                status_code=409,
                detail={"message": str(exc), "incomplete_items": exc.incomplete_items},
            )
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


# Pydantic models for API
class QuoteCreate(BaseModel):
    """Request model for generating a quote; omitted lists select every row."""
    cart_ids: Optional[list[int]] = None
    package_ids: Optional[list[int]] = None


class ConfigurationSubmit(BaseModel):
    """Request model for one configuration submission."""
    configuration: dict = {}


class OrderStatusUpdate(BaseModel):
    status: str


def quote_payload(service: QuoteService, quote: Quote) -> dict:
    data = quote.to_dict()
    data['displayStatus'] = service.display_status(quote)
    return data


def order_payload(order: Order) -> dict:
    return order.to_dict()


# Quote endpoints

@router.get("")
async def list_quotes(service: QuoteService = Depends(get_service)):
    """List all quotes with their display status."""
    return [quote_payload(service, q) for q in service.store.state.quotes]


@router.post("")
async def generate_quote(req: QuoteCreate, service: QuoteService = Depends(get_service)):
    """Create a pending quote from cart and package rows."""
    try:
        quote = service.generate_quote(req.cart_ids, req.package_ids)
    except ConfiguratorError as e:
        raise http_error(e)
    return quote_payload(service, quote)


@router.get("/{quote_id}")
async def get_quote(quote_id: str, demo: bool = False, service: QuoteService = Depends(get_service)):
    """Get a quote; with demo=true an unknown id is filled with the demo quote."""
    try:
        quote = service.materialize_demo_quote(quote_id) if demo else service.get_quote(quote_id)
    except ConfiguratorError as e:
        raise http_error(e)
    return quote_payload(service, quote)


@router.post("/{quote_id}/accept")
async def accept_quote(quote_id: str, service: QuoteService = Depends(get_service)):
    try:
        quote = service.accept_quote(quote_id)
    except ConfiguratorError as e:
        raise http_error(e)
    return quote_payload(service, quote)


@router.post("/{quote_id}/decline")
async def decline_quote(quote_id: str, service: QuoteService = Depends(get_service)):
    try:
        quote = service.decline_quote(quote_id)
    except ConfiguratorError as e:
        raise http_error(e)
    return quote_payload(service, quote)


@router.get("/{quote_id}/configuration")
async def configuration_overview(quote_id: str, service: QuoteService = Depends(get_service)):
    """Configuration progress across the quote's configurable items."""
    try:
        return service.configuration_overview(quote_id)
    except ConfiguratorError as e:
        raise http_error(e)


@router.get("/{quote_id}/items/{item_index}/configure")
async def start_configuration(quote_id: str, item_index: int, service: QuoteService = Depends(get_service)):
    """The line item a configuration form would edit."""
    try:
        item = service.start_configuration(quote_id, item_index)
    except ConfiguratorError as e:
        raise http_error(e)
    return item.to_dict()


@router.post("/{quote_id}/items/{item_index}/configure")
async def submit_configuration(
    quote_id: str,
    item_index: int,
    req: ConfigurationSubmit,
    service: QuoteService = Depends(get_service),
):
    """Record one configuration; spawns an order for the item."""
    try:
        result = service.submit_configuration(quote_id, item_index, req.configuration)
    except ConfiguratorError as e:
        raise http_error(e)
    return {
        "message": result.message,
        "item": result.item.to_dict(),
        "order": order_payload(result.order) if result.order else None,
        "quote": quote_payload(service, result.quote),
    }


@router.post("/{quote_id}/order")
async def create_order_from_quote(quote_id: str, service: QuoteService = Depends(get_service)):
    """Deprecated consolidated order for a fully configured quote."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            order = service.create_order_from_quote(quote_id)
    except ConfiguratorError as e:
        raise http_error(e)
    return order_payload(order)


@router.get("/{quote_id}/orders")
async def quote_orders(quote_id: str, service: QuoteService = Depends(get_service)):
    return [order_payload(o) for o in service.orders_for_quote(quote_id)]


@router.get("/{quote_id}/export")
async def export_quote(quote_id: str, service: QuoteService = Depends(get_service)):
    """Download the quote's line items as CSV."""
    try:
        quote = service.get_quote(quote_id)
    except ConfiguratorError as e:
        raise http_error(e)
    csv = quote_to_frame(quote).to_csv(index=False)
    return Response(
        content=csv,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="quote_{quote.quote_number}.csv"'},
    )


# Order endpoints

@orders_router.get("")
async def list_orders(service: QuoteService = Depends(get_service)):
    return [order_payload(o) for o in service.store.state.orders]


@orders_router.get("/{order_id}")
async def get_order(order_id: str, service: QuoteService = Depends(get_service)):
    try:
        return order_payload(service.get_order(order_id))
    except ConfiguratorError as e:
        raise http_error(e)


@orders_router.put("/{order_id}/status")
async def update_order_status(order_id: str, req: OrderStatusUpdate, service: QuoteService = Depends(get_service)):
    """Move an order forward through its fulfilment statuses."""
    try:
        return order_payload(service.update_order_status(order_id, req.status))
    except ConfiguratorError as e:
        raise http_error(e)
