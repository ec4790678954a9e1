"""Cart subsystem: line items keyed by product id plus derived aggregates.

Every operation reads the current cart, computes the whole next cart and
writes it back as a shallow replace of the ``cart`` key, so removed line
items cannot be resurrected by a later deep merge.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from pydatalayer.exceptions import DataLayerValidationError
from pydatalayer.state.events import CartOperationKind, QueuedCartOperation

if TYPE_CHECKING:
    from pydatalayer.state.container import DataLayer

_logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CartItemInput(BaseModel):
    """Product data accepted by :meth:`Cart.add`."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    image: str = ""
    thumbnail: str = ""
    category: str = ""
    description: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, value: Any) -> Any:
        # falsy quantities (None, 0, "") mean "one"
        return 1 if value is None or value == "" or value == 0 else value


class LineItem(_CamelModel):
    id: str
    sku: str = ""
    name: str = ""
    image: str = ""
    thumbnail: str = ""
    category: str = ""
    description: str = ""
    price: float
    quantity: int = Field(..., ge=1)
    sub_total: float = 0
    total: float = 0

    @classmethod
    def from_input(cls, item: CartItemInput) -> LineItem:
        sub_total = item.price * item.quantity
        return cls(
            id=item.id,
            sku=item.id,
            name=item.name,
            image=item.image,
            thumbnail=item.thumbnail,
            category=item.category,
            description=item.description,
            price=item.price,
            quantity=item.quantity,
            sub_total=sub_total,
            total=sub_total,
        )

    def with_quantity(self, quantity: int) -> LineItem:
        sub_total = self.price * quantity
        return self.model_copy(update={"quantity": quantity, "sub_total": sub_total, "total": sub_total})


class CartState(_CamelModel):
    """Cart section of the state tree.

    ``product_count`` and ``sub_total`` are always folds over ``products``;
    ``total`` equals ``sub_total`` since tax and shipping are not modelled.
    """

    product_count: int = 0
    products: dict[str, LineItem] = Field(default_factory=dict)
    sub_total: float = 0
    total: float = 0

    @classmethod
    def from_products(cls, products: Mapping[str, LineItem]) -> CartState:
        items = dict(products)
        sub_total = sum(item.sub_total for item in items.values())
        return cls(
            product_count=sum(item.quantity for item in items.values()),
            products=items,
            sub_total=sub_total,
            total=sub_total,
        )

    def to_tree(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _parse_product_id(product_id: Any) -> str:
    if isinstance(product_id, (int, float)) and not isinstance(product_id, bool):
        product_id = str(product_id)
    if not isinstance(product_id, str) or not product_id.strip():
        raise DataLayerValidationError(f"product id must be a non-empty string, got {product_id!r}")
    return product_id.strip()


def _parse_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool):
        raise DataLayerValidationError(f"quantity must be an integer, got {quantity!r}")
    try:
        return int(quantity)
    except (TypeError, ValueError) as exc:
        raise DataLayerValidationError(f"quantity must be an integer, got {quantity!r}") from exc


class Cart:
    """Convenience writer over :meth:`DataLayer.write` for the ``cart`` section."""

    def __init__(self, datalayer: DataLayer) -> None:
        self._datalayer = datalayer

    def state(self) -> CartState | None:
        """Validated snapshot of the current cart, or ``None`` before start."""
        if not self._datalayer.initialized:
            return None
        return self._current()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def add(self, item: Mapping[str, Any]) -> None:
        """Add *item* to the cart, incrementing quantity when already present."""
        try:
            parsed = CartItemInput.model_validate(item)
        except ValidationError as exc:
            _logger.error("Invalid product data provided to cart.add(): %s", exc)
            return
        self._submit(CartOperationKind.ADD, {"item": parsed.model_dump()})

    def remove(self, product_id: str) -> None:
        """Delete the line item for *product_id*."""
        try:
            pid = _parse_product_id(product_id)
        except DataLayerValidationError as exc:
            _logger.error("Invalid cart.remove() call: %s", exc)
            return
        self._submit(CartOperationKind.REMOVE, {"id": pid})

    def set_quantity(self, product_id: str, quantity: int) -> None:
        """Set the quantity of *product_id*; anything below 1 removes it."""
        try:
            pid = _parse_product_id(product_id)
            qty = _parse_quantity(quantity)
        except DataLayerValidationError as exc:
            _logger.error("Invalid cart.set_quantity() call: %s", exc)
            return
        if qty < 1:
            self._submit(CartOperationKind.REMOVE, {"id": pid})
            return
        self._submit(CartOperationKind.SET_QUANTITY, {"id": pid, "quantity": qty})

    def reset(self) -> None:
        """Empty the cart and clear product and commerce sections (after an order)."""
        self._datalayer.write(
            {"cart": CartState().to_tree(), "product": {}, "commerce": {}},
            merge=False,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _submit(self, kind: CartOperationKind, arguments: dict[str, Any]) -> None:
        if not self._datalayer.ready:
            self._datalayer._enqueue_cart_operation(QueuedCartOperation(kind=kind, arguments=arguments))  # noqa: SLF001
            return
        update = self.build_update(kind, arguments)
        if update is not None:
            self._datalayer.write(update, merge=False)

    def _current(self) -> CartState:
        raw = self._datalayer.read("cart")
        if not isinstance(raw, dict) or not raw:
            return CartState()
        try:
            current = CartState.model_validate(raw)
        except ValidationError as exc:
            _logger.warning("Discarding unreadable cart section: %s", exc)
            return CartState()
        # Aggregates may be stale after a partial external write.
        products = {pid: item.with_quantity(item.quantity) for pid, item in current.products.items()}
        return CartState.from_products(products)

    def build_update(self, kind: CartOperationKind, arguments: Mapping[str, Any]) -> dict[str, Any] | None:
        """Compute the ``{"cart": ...}`` payload for one operation, or ``None`` for a no-op."""
        current = self._current()
        products = dict(current.products)

        if kind is CartOperationKind.ADD:
            item = CartItemInput.model_validate(arguments["item"])
            existing = products.get(item.id)
            if existing is not None:
                products[item.id] = existing.with_quantity(existing.quantity + item.quantity)
            else:
                products[item.id] = LineItem.from_input(item)
        elif kind is CartOperationKind.REMOVE:
            pid = arguments["id"]
            if products.pop(pid, None) is None:
                _logger.debug("Product %s not in cart; nothing to remove", pid)
                return None
        elif kind is CartOperationKind.SET_QUANTITY:
            pid = arguments["id"]
            existing = products.get(pid)
            if existing is None:
                _logger.debug("Product %s not in cart; quantity unchanged", pid)
                return None
            products[pid] = existing.with_quantity(arguments["quantity"])

        return {"cart": CartState.from_products(products).to_tree()}
