"""
Store - the session state container.

Every mutation is an Action run through `store_reducer`, a pure
(state, action) -> state function that builds a new StoreState and never
edits the old one. Ids and timestamps are minted by the Store before
dispatch so the reducer stays deterministic. After each dispatch the whole
tree is mirrored to the storage collaborator; storage failures are logged
and swallowed, the in-memory state stays authoritative.
"""
import json
import logging
import random
import time
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from ..config.settings import get_settings, Settings
from ..engine.identifiers import new_item_id, new_order_id, new_quote_id
from ..engine.models import (
    ORDER_STATUSES,
    QUOTE_STATUSES,
    CartItem,
    LineItem,
    Order,
    Quote,
    Signature,
    StoreState,
    parse_timestamp,
)
from .errors import StorageError
from .storage import JsonFileStorage


logger = logging.getLogger(__name__)


# Action types
ADD_TO_CART = 'ADD_TO_CART'
REMOVE_FROM_CART = 'REMOVE_FROM_CART'
UPDATE_CART_QUANTITY = 'UPDATE_CART_QUANTITY'
CLEAR_CART = 'CLEAR_CART'
ADD_TO_PACKAGES = 'ADD_TO_PACKAGES'
REMOVE_FROM_PACKAGES = 'REMOVE_FROM_PACKAGES'
UPDATE_PACKAGES_QUANTITY = 'UPDATE_PACKAGES_QUANTITY'
CREATE_QUOTE = 'CREATE_QUOTE'
ADD_QUOTE = 'ADD_QUOTE'
UPDATE_QUOTE = 'UPDATE_QUOTE'
UPDATE_QUOTE_STATUS = 'UPDATE_QUOTE_STATUS'
CREATE_ORDER = 'CREATE_ORDER'
UPDATE_ORDER_STATUS = 'UPDATE_ORDER_STATUS'
SET_IBX = 'SET_IBX'
SET_CAGE = 'SET_CAGE'


@dataclass
class Action:
    """A state transition request."""
    type: str
    payload: Any = None


# Quote fields update_quote may patch
QUOTE_PATCHABLE_FIELDS = {f.name for f in fields(Quote)} - {'id', 'created_at', 'status', 'signature'}


# Payload keys for the quote defaults filled in by create_quote
QUOTE_PAYLOAD_KEYS = {
    'currency': 'currency',
    'valid_until': 'validUntil',
    'expires_at': 'expiresAt',
    'customer_info': 'customerInfo',
    'initial_term_months': 'initialTermMonths',
    'renewal_period_months': 'renewalPeriodMonths',
    'non_renewal_notice': 'nonRenewalNotice',
}


def _coerce_line_items(items) -> list[LineItem]:
    """LineItems as given; dict entries are parsed from the persisted layout."""
    return [item if isinstance(item, LineItem) else LineItem.from_dict(item) for item in items]


def _set_quantity(items: list[CartItem], item_id: int, qty: int) -> list[CartItem]:
    return [replace(item, qty=qty) if item.id == item_id else item for item in items]


def _apply_quote_status(quote: Quote, status: str, signature: Optional[Signature], updated_at: str) -> Quote:
    if quote.status != 'pending' and status != quote.status:
        logger.warning(
            "Refusing status change %s -> %s on quote %s", quote.status, status, quote.id
        )
        return quote
    return replace(
        quote,
        status=status,
        signature=signature if signature is not None else quote.signature,
        updated_at=updated_at,
    )


def _apply_order_status(order: Order, status: str, updated_at: str) -> Order:
    current = ORDER_STATUSES.index(order.status) if order.status in ORDER_STATUSES else 0
    if ORDER_STATUSES.index(status) < current:
        logger.warning(
            "Refusing order status change %s -> %s on order %s", order.status, status, order.id
        )
        return order
    return replace(order, status=status, updated_at=updated_at)


def store_reducer(state: StoreState, action: Action) -> StoreState:
    """Apply one action; unknown ids and refused transitions leave state unchanged."""
    t = action.type
    p = action.payload

    if t == ADD_TO_CART:
        return replace(state, cart=[*state.cart, p])
    if t == REMOVE_FROM_CART:
        return replace(state, cart=[item for item in state.cart if item.id != p])
    if t == UPDATE_CART_QUANTITY:
        item_id, qty = p
        return replace(state, cart=_set_quantity(state.cart, item_id, qty))
    if t == CLEAR_CART:
        return replace(state, cart=[])

    if t == ADD_TO_PACKAGES:
        return replace(state, packages=[*state.packages, p])
    if t == REMOVE_FROM_PACKAGES:
        return replace(state, packages=[item for item in state.packages if item.id != p])
    if t == UPDATE_PACKAGES_QUANTITY:
        item_id, qty = p
        return replace(state, packages=_set_quantity(state.packages, item_id, qty))

    if t in (CREATE_QUOTE, ADD_QUOTE):
        return replace(state, quotes=[*state.quotes, p])

    if t == UPDATE_QUOTE:
        quote_id, patch = p
        if state.find_quote(quote_id) is None:
            return state
        return replace(state, quotes=[
            replace(q, **patch) if q.id == quote_id else q for q in state.quotes
        ])

    if t == UPDATE_QUOTE_STATUS:
        quote_id, status, signature, updated_at = p
        if state.find_quote(quote_id) is None or status not in QUOTE_STATUSES:
            return state
        return replace(state, quotes=[
            _apply_quote_status(q, status, signature, updated_at) if q.id == quote_id else q
            for q in state.quotes
        ])

    if t == CREATE_ORDER:
        return replace(state, orders=[*state.orders, p])

    if t == UPDATE_ORDER_STATUS:
        order_id, status, updated_at = p
        if state.find_order(order_id) is None or status not in ORDER_STATUSES:
            return state
        return replace(state, orders=[
            _apply_order_status(o, status, updated_at) if o.id == order_id else o
            for o in state.orders
        ])

    if t == SET_IBX:
        return replace(state, selected_ibx=p)
    if t == SET_CAGE:
        return replace(state, selected_cage=p)

    return state


class Store:
    """
    Owns the state tree and exposes the mutation operations.

    `clock` returns Unix seconds (time.time by default); `rng` feeds quote id
    generation. Both exist so tests can pin them.
    """

    def __init__(
        self,
        storage=None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage if storage is not None else JsonFileStorage(self.settings.state_file)
        self.clock = clock or time.time
        self.rng = rng
        self.state = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _initial_state(self) -> StoreState:
        return StoreState(
            selected_ibx=self.settings.default_ibx,
            selected_cage=self.settings.default_cage,
        )

    def _load(self) -> StoreState:
        """Rehydrate from storage, falling back to an empty state."""
        initial = self._initial_state()
        try:
            raw = self.storage.get(self.settings.storage_key)
        except StorageError:
            logger.exception("Error reading stored state")
            return initial

        if not raw:
            return initial

        try:
            data = json.loads(raw)
        except ValueError:
            logger.exception("Stored state is not valid JSON, starting empty")
            return initial

        if not isinstance(data, dict):
            logger.warning("Stored state is not an object, starting empty")
            return initial

        state = StoreState.from_dict(data, defaults=initial)
        logger.info(
            "Restored state: %d cart, %d packages, %d quotes, %d orders",
            len(state.cart), len(state.packages), len(state.quotes), len(state.orders),
        )
        return state

    def _persist(self) -> None:
        try:
            self.storage.set(self.settings.storage_key, json.dumps(self.state.to_dict()))
        except Exception:
            # storage is a best-effort mirror; the in-memory state stays authoritative
            logger.exception("Error writing state to storage")

    def dispatch(self, action: Action) -> StoreState:
        """Apply an action, then mirror the new state to storage."""
        self.state = store_reducer(self.state, action)
        self._persist()
        return self.state

    # ------------------------------------------------------------------
    # Clock helpers
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def now_iso(self) -> str:
        return self.now().isoformat()

    def _new_item_id(self) -> int:
        taken = [item.id for item in self.state.cart] + [item.id for item in self.state.packages]
        return new_item_id(self.clock, taken)

    # ------------------------------------------------------------------
    # Cart and packages
    # ------------------------------------------------------------------

    def add_to_cart(self, item: CartItem) -> CartItem:
        """Append a cart row with a freshly minted id; identical rows are not merged."""
        added = replace(item, id=self._new_item_id())
        self.dispatch(Action(ADD_TO_CART, added))
        return added

    def remove_from_cart(self, item_id: int) -> None:
        self.dispatch(Action(REMOVE_FROM_CART, item_id))

    def update_cart_quantity(self, item_id: int, qty: int) -> None:
        self.dispatch(Action(UPDATE_CART_QUANTITY, (item_id, qty)))

    def clear_cart(self) -> None:
        self.dispatch(Action(CLEAR_CART))

    def add_to_packages(self, item: CartItem) -> CartItem:
        added = replace(item, id=self._new_item_id())
        self.dispatch(Action(ADD_TO_PACKAGES, added))
        return added

    def remove_from_packages(self, item_id: int) -> None:
        self.dispatch(Action(REMOVE_FROM_PACKAGES, item_id))

    def update_packages_quantity(self, item_id: int, qty: int) -> None:
        self.dispatch(Action(UPDATE_PACKAGES_QUANTITY, (item_id, qty)))

    def get_cart_total(self) -> float:
        """Sum of monthly prices; ignores qty."""
        return sum(item.price or 0 for item in self.state.cart)

    def get_packages_total(self) -> float:
        """Sum of monthly prices; ignores qty."""
        return sum(item.price or 0 for item in self.state.packages)

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def _quote_defaults(self, created_at: datetime) -> dict:
        deadline = (created_at + timedelta(days=self.settings.quote_validity_days)).isoformat()
        return {
            'currency': self.settings.currency,
            'valid_until': deadline,
            'expires_at': deadline,
            'customer_info': dict(self.settings.customer_info),
            'initial_term_months': self.settings.initial_term_months,
            'renewal_period_months': self.settings.renewal_period_months,
            'non_renewal_notice': self.settings.non_renewal_notice_days,
        }

    def create_quote(self, items_or_quote) -> Quote:
        """
        Mint and append a quote. Does not clear the cart.

        Accepts a list of line items (LineItem or dicts), a Quote, or a quote
        payload mapping. A caller-supplied id is kept; otherwise one is minted.
        """
        now = self.now()

        if isinstance(items_or_quote, Quote):
            quote = items_or_quote
            if not quote.id:
                quote = replace(quote, id=new_quote_id(self.rng), quote_number=None)
        elif isinstance(items_or_quote, Mapping):
            payload = dict(items_or_quote)
            payload.setdefault('id', new_quote_id(self.rng))
            payload.setdefault('createdAt', now.isoformat())
            created_at = parse_timestamp(payload['createdAt']) or now
            for name, value in self._quote_defaults(created_at).items():
                if not payload.get(QUOTE_PAYLOAD_KEYS[name]):
                    payload[QUOTE_PAYLOAD_KEYS[name]] = value
            quote = Quote.from_dict(payload)
        else:
            items = _coerce_line_items(items_or_quote)
            quote = Quote(
                id=new_quote_id(self.rng),
                items=items,
                created_at=now.isoformat(),
                **self._quote_defaults(now),
            )

        if not quote.created_at:
            quote = replace(quote, created_at=now.isoformat())

        self.dispatch(Action(CREATE_QUOTE, quote))
        logger.info("Created quote %s with %d items", quote.id, len(quote.items))
        return quote

    def add_quote(self, quote: Quote) -> Quote:
        """Append a fully built quote verbatim; no id minting."""
        self.dispatch(Action(ADD_QUOTE, quote))
        return quote

    def update_quote(self, quote_id: str, patch: dict) -> Optional[Quote]:
        """Shallow-merge top-level fields into a quote; no-op when the id is unknown."""
        unknown = set(patch) - QUOTE_PATCHABLE_FIELDS
        if unknown:
            logger.warning("Ignoring unknown quote fields: %s", ", ".join(sorted(unknown)))
        clean = {k: v for k, v in patch.items() if k in QUOTE_PATCHABLE_FIELDS}
        if 'items' in clean:
            clean['items'] = _coerce_line_items(clean['items'])
        self.dispatch(Action(UPDATE_QUOTE, (quote_id, clean)))
        return self.get_quote(quote_id)

    def update_quote_status(
        self, quote_id: str, status: str, signature: Optional[Signature | dict] = None
    ) -> Optional[Quote]:
        """Set status (and signature when given) plus updated_at."""
        if isinstance(signature, dict):
            signature = Signature.from_dict(signature)
        self.dispatch(Action(UPDATE_QUOTE_STATUS, (quote_id, status, signature, self.now_iso())))
        return self.get_quote(quote_id)

    def get_quote(self, quote_id: str) -> Optional[Quote]:
        return self.state.find_quote(quote_id)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(self, order: Order | dict) -> Order:
        """Mint an order id when missing, stamp created_at, append."""
        if isinstance(order, Mapping):
            order = Order.from_dict({'id': '', **order})
        if not order.id:
            order_id = new_order_id(self.clock)
            order = replace(order, id=order_id, order_number=order.order_number or order_id)
        order = replace(order, created_at=self.now_iso())

        self.dispatch(Action(CREATE_ORDER, order))
        logger.info("Created order %s for quote %s", order.id, order.quote_id)
        return order

    def update_order_status(self, order_id: str, status: str) -> Optional[Order]:
        """Move an order forward through pending/processing/shipped/completed."""
        self.dispatch(Action(UPDATE_ORDER_STATUS, (order_id, status, self.now_iso())))
        return self.get_order(order_id)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.state.find_order(order_id)

    # ------------------------------------------------------------------
    # Location context
    # ------------------------------------------------------------------

    def set_selected_ibx(self, ibx: str) -> None:
        self.dispatch(Action(SET_IBX, ibx))

    def set_selected_cage(self, cage: str) -> None:
        self.dispatch(Action(SET_CAGE, cage))
