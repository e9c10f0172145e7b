"""Checkout totals built on top of the shipping estimator."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from shipcostestimate import (
    DEFAULT_FREE_SHIPPING_THRESHOLD,
    DEFAULT_ITEM_WEIGHT_GRAMS,
    ItemDimensions,
    ShippingQuote,
    is_eligible_for_free_shipping,
)

# Catalogue fallbacks for products registered without packaging measurements.
DEFAULT_PACKAGE_DIMENSIONS_CM = {
    "height_cm": 10.0,
    "width_cm": 20.0,
    "length_cm": 30.0,
}


class CheckoutError(ValueError):
    """Raised when a checkout payload cannot be summarised."""


@dataclass(frozen=True)
class CheckoutSummary:
    subtotal: float
    discount: float
    shipping_cost: float
    total: float
    free_shipping: bool
    free_shipping_threshold: float
    selected_quote: Optional[ShippingQuote] = None
    quotes: List[ShippingQuote] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "discount": self.discount,
            "shippingCost": self.shipping_cost,
            "total": self.total,
            "freeShipping": self.free_shipping,
            "freeShippingThreshold": self.free_shipping_threshold,
            "selectedQuote": self.selected_quote.to_dict() if self.selected_quote else None,
            "quotes": [quote.to_dict() for quote in self.quotes],
        }


def _product_of(line: Mapping[str, Any]) -> Mapping[str, Any]:
    if not isinstance(line, Mapping):
        raise CheckoutError("Cart lines must be objects")
    product = line.get("product")
    if product is None:
        return line
    if not isinstance(product, Mapping):
        raise CheckoutError("Cart line product must be an object")
    return product


def _number(value: Any, label: str, default: float = 0.0) -> float:
    if value in (None, ""):
        return default
    if isinstance(value, bool):
        raise CheckoutError(f"{label} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise CheckoutError(f"{label} must be a number")
    if not math.isfinite(number):
        raise CheckoutError(f"{label} must be a finite number")
    if number < 0:
        raise CheckoutError(f"{label} must not be negative")
    return number


def build_item_dimensions(cart_items: Iterable[Mapping[str, Any]]) -> List[ItemDimensions]:
    """One package per cart line, filling gaps from the catalogue defaults.

    Quantity is not multiplied in: a line is shipped as a single package.
    """
    dimensions: List[ItemDimensions] = []
    for line in cart_items:
        product = _product_of(line)
        values = {
            name: _number(product.get(name), name) or default
            for name, default in DEFAULT_PACKAGE_DIMENSIONS_CM.items()
        }
        values["weight_grams"] = _number(product.get("weight_grams"), "weight_grams") or DEFAULT_ITEM_WEIGHT_GRAMS
        dimensions.append(ItemDimensions(**values))
    return dimensions


def calculate_cart_subtotal(cart_items: Iterable[Mapping[str, Any]]) -> float:
    subtotal = 0.0
    for line in cart_items:
        product = _product_of(line)
        price = _number(product.get("price"), "price")
        quantity = _number(line.get("quantity"), "quantity", default=1)
        subtotal += price * quantity
    return round(subtotal, 2)


def select_cheapest_quote(quotes: Sequence[ShippingQuote]) -> Optional[ShippingQuote]:
    if not quotes:
        return None
    cheapest = quotes[0]
    for quote in quotes[1:]:
        if quote.price < cheapest.price:
            cheapest = quote
    return cheapest


def _find_quote(quotes: Sequence[ShippingQuote], service: str) -> ShippingQuote:
    wanted = str(service).strip().upper()
    for quote in quotes:
        if quote.service.value == wanted:
            return quote
    raise CheckoutError(f"Shipping service '{service}' is not available")


def summarize_checkout(
    subtotal: float,
    quotes: Sequence[ShippingQuote],
    *,
    selected_service: Optional[str] = None,
    discount: float = 0.0,
    threshold: float = DEFAULT_FREE_SHIPPING_THRESHOLD,
) -> CheckoutSummary:
    """Combine the cart subtotal, discount and chosen shipping quote.

    Without an explicit ``selected_service`` the cheapest quote is chosen.
    Shipping is zeroed when the subtotal reaches the free shipping threshold.
    """

    subtotal = _number(subtotal, "subtotal")
    discount = _number(discount, "discount")

    if selected_service:
        selected = _find_quote(quotes, selected_service)
    else:
        selected = select_cheapest_quote(quotes)

    free_shipping = is_eligible_for_free_shipping(subtotal, threshold)
    if free_shipping or selected is None:
        shipping_cost = 0.0
    else:
        shipping_cost = selected.price

    return CheckoutSummary(
        subtotal=round(subtotal, 2),
        discount=round(discount, 2),
        shipping_cost=round(shipping_cost, 2),
        total=round(subtotal - discount + shipping_cost, 2),
        free_shipping=free_shipping,
        free_shipping_threshold=threshold,
        selected_quote=selected,
        quotes=list(quotes),
    )
