from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from colo_configurator import __version__
from colo_configurator.engine.money import format_currency
from colo_configurator.services.errors import ConfiguratorError
from colo_configurator.services.quote_service import QuoteService
from colo_configurator.api.quotes_api import http_error, orders_router, router as quotes_router
from colo_configurator.api.state import get_service

app = FastAPI(
    title="Colo Configurator API",
    description="Catalog, pricing, cart, quote and order endpoints for the data center configurator",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(quotes_router)
app.include_router(orders_router)


class PriceRequest(BaseModel):
    product_key: str
    configuration: dict = {}
    template_id: Optional[str] = None


class CartAdd(BaseModel):
    product_key: str
    configuration: dict = {}
    qty: int = 1
    template_id: Optional[str] = None


class PackageAdd(BaseModel):
    package_key: str
    qty: int = 1


class QuantityUpdate(BaseModel):
    qty: int


class LocationUpdate(BaseModel):
    ibx: Optional[str] = None
    cage: Optional[str] = None


def rows_payload(rows, total: float) -> dict:
    return {
        "items": [row.to_dict() for row in rows],
        "total": total,
        "formattedTotal": format_currency(total),
    }


@app.get("/")
async def root():
    return {"status": "online", "message": "Colo Configurator API Active"}


# Catalog

@app.get("/catalog")
async def get_catalog(
    category: Optional[str] = None,
    search: Optional[str] = None,
    service: QuoteService = Depends(get_service),
):
    """List catalog products, optionally filtered by category and text."""
    return jsonable_encoder(service.catalog.search(category=category, text=search))


@app.get("/catalog/packages")
async def get_catalog_packages(service: QuoteService = Depends(get_service)):
    return jsonable_encoder(service.catalog.packages())


@app.get("/catalog/{product_key}")
async def get_product(product_key: str, service: QuoteService = Depends(get_service)):
    product = service.catalog.get(product_key)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product '{product_key}' not found")
    data = jsonable_encoder(product)
    data['defaultConfiguration'] = service.catalog.default_configuration(product_key)
    return data


# Pricing

@app.post("/price")
async def price_configuration(req: PriceRequest, service: QuoteService = Depends(get_service)):
    """Price a configuration without touching the cart."""
    try:
        config = service.build_configuration(req.product_key, req.configuration, req.template_id)
        price = service.price_configuration(req.product_key, config)
        validation = service.validate(req.product_key, config)
    except ConfiguratorError as e:
        raise http_error(e)

    product = service.catalog.get(req.product_key)
    breakdown = service.pricing.breakdown(product, config)
    return {
        "product_key": req.product_key,
        "configuration": config,
        "unitPrice": price.to_dict(),
        "formatted": {
            "oneTime": format_currency(price.one_time),
            "recurring": format_currency(price.recurring),
        },
        "breakdown": breakdown.to_dict() if breakdown else None,
        "validation": jsonable_encoder(validation),
    }


# Cart

@app.get("/cart")
async def get_cart(service: QuoteService = Depends(get_service)):
    return rows_payload(service.store.state.cart, service.store.get_cart_total())


@app.post("/cart")
async def add_to_cart(req: CartAdd, service: QuoteService = Depends(get_service)):
    """Validate, price and add a configured product."""
    try:
        item = service.add_product_to_cart(req.product_key, req.configuration, req.qty, req.template_id)
    except ConfiguratorError as e:
        raise http_error(e)
    return item.to_dict()


@app.patch("/cart/{item_id}")
async def update_cart_quantity(item_id: int, req: QuantityUpdate, service: QuoteService = Depends(get_service)):
    service.store.update_cart_quantity(item_id, req.qty)
    return rows_payload(service.store.state.cart, service.store.get_cart_total())


@app.delete("/cart/{item_id}")
async def remove_from_cart(item_id: int, service: QuoteService = Depends(get_service)):
    service.store.remove_from_cart(item_id)
    return rows_payload(service.store.state.cart, service.store.get_cart_total())


@app.delete("/cart")
async def clear_cart(service: QuoteService = Depends(get_service)):
    service.store.clear_cart()
    return rows_payload(service.store.state.cart, service.store.get_cart_total())


# Packages

@app.get("/packages")
async def get_packages(service: QuoteService = Depends(get_service)):
    return rows_payload(service.store.state.packages, service.store.get_packages_total())


@app.post("/packages")
async def add_package(req: PackageAdd, service: QuoteService = Depends(get_service)):
    try:
        item = service.add_package(req.package_key, req.qty)
    except ConfiguratorError as e:
        raise http_error(e)
    return item.to_dict()


@app.patch("/packages/{item_id}")
async def update_packages_quantity(item_id: int, req: QuantityUpdate, service: QuoteService = Depends(get_service)):
    service.store.update_packages_quantity(item_id, req.qty)
    return rows_payload(service.store.state.packages, service.store.get_packages_total())


@app.delete("/packages/{item_id}")
async def remove_from_packages(item_id: int, service: QuoteService = Depends(get_service)):
    service.store.remove_from_packages(item_id)
    return rows_payload(service.store.state.packages, service.store.get_packages_total())


# Session location context

@app.get("/session/location")
async def get_location(service: QuoteService = Depends(get_service)):
    state = service.store.state
    settings = service.settings
    return {
        "ibx": state.selected_ibx,
        "cage": state.selected_cage,
        "ibx_options": list(settings.ibx_options),
        "cage_options": list(settings.cage_options),
    }


@app.put("/session/location")
async def set_location(req: LocationUpdate, service: QuoteService = Depends(get_service)):
    if req.ibx is not None:
        service.store.set_selected_ibx(req.ibx)
    if req.cage is not None:
        service.store.set_selected_cage(req.cage)
    state = service.store.state
    return {"ibx": state.selected_ibx, "cage": state.selected_cage}


@app.get("/system/status")
async def get_status(service: QuoteService = Depends(get_service)):
    state = service.store.state
    return {
        "catalog_version": service.catalog.version,
        "products": len(service.catalog.products()),
        "cart_items": len(state.cart),
        "quotes": len(state.quotes),
        "orders": len(state.orders),
        "state_file": str(service.settings.state_file),
    }
