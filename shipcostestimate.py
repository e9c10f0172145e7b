"""Correios shipping cost estimator for the storefront checkout.

Quotes are derived from a destination CEP and the physical dimensions of the
cart lines. Prices come from a fixed table keyed by distance tier relative to
the store's origin (Uberlândia, MG) and are scaled by a weight multiplier.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from services.cep import clean_cep as normalize_postal_code

LOGGER = logging.getLogger(__name__)

POSTAL_CODE_LENGTH = 8
DEFAULT_ITEM_WEIGHT_GRAMS = 300
VOLUMETRIC_DIVISOR_CM3_PER_KG = 6000
DEFAULT_FREE_SHIPPING_THRESHOLD = 299.0


class Region(str, Enum):
    SUDESTE = "sudeste"
    SUL = "sul"
    CENTRO_OESTE = "centro_oeste"
    NORDESTE = "nordeste"
    NORTE = "norte"


class DistanceTier(str, Enum):
    LOCAL = "local"
    REGIONAL = "regional"
    NACIONAL = "nacional"


class ShippingService(str, Enum):
    PAC = "PAC"
    SEDEX = "SEDEX"


ORIGIN_STATE = "MG"
ORIGIN_REGION = Region.SUDESTE
DEFAULT_STATE = "SP"

# Inclusive CEP prefix ranges (first two digits) per state.
CEP_PREFIX_RANGES: Tuple[Tuple[int, int, str], ...] = (
    (1, 19, "SP"),
    (20, 28, "RJ"),
    (29, 29, "ES"),
    (30, 39, "MG"),
    (40, 48, "BA"),
    (49, 49, "SE"),
    (50, 56, "PE"),
    (57, 57, "AL"),
    (58, 58, "PB"),
    (59, 59, "RN"),
    (60, 63, "CE"),
    (64, 64, "PI"),
    (65, 65, "MA"),
    (66, 68, "PA"),
    (69, 69, "AM"),
    (70, 73, "DF"),
    (74, 76, "GO"),
    (77, 77, "TO"),
    (78, 78, "MT"),
    (79, 79, "MS"),
    (80, 87, "PR"),
    (88, 89, "SC"),
    (90, 99, "RS"),
)

STATES_BY_REGION: Mapping[Region, frozenset] = MappingProxyType(
    {
        Region.SUDESTE: frozenset({"SP", "RJ", "MG", "ES"}),
        Region.SUL: frozenset({"PR", "SC", "RS"}),
        Region.CENTRO_OESTE: frozenset({"GO", "MT", "MS", "DF"}),
        Region.NORDESTE: frozenset({"BA", "SE", "AL", "PE", "PB", "RN", "CE", "PI", "MA"}),
        Region.NORTE: frozenset({"AM", "PA", "AC", "RO", "RR", "AP", "TO"}),
    }
)

REGION_BY_STATE: Mapping[str, Region] = MappingProxyType(
    {state: region for region, states in STATES_BY_REGION.items() for state in states}
)

# Regions that border the origin region and are billed as regional.
ADJACENT_REGIONS = frozenset({Region.SUL, Region.CENTRO_OESTE})

BASE_PRICES: Mapping[ShippingService, Mapping[DistanceTier, float]] = MappingProxyType(
    {
        ShippingService.PAC: MappingProxyType(
            {DistanceTier.LOCAL: 15.90, DistanceTier.REGIONAL: 22.90, DistanceTier.NACIONAL: 32.90}
        ),
        ShippingService.SEDEX: MappingProxyType(
            {DistanceTier.LOCAL: 25.90, DistanceTier.REGIONAL: 38.90, DistanceTier.NACIONAL: 52.90}
        ),
    }
)

# Business days in transit.
DELIVERY_DAYS: Mapping[ShippingService, Mapping[DistanceTier, int]] = MappingProxyType(
    {
        ShippingService.PAC: MappingProxyType(
            {DistanceTier.LOCAL: 5, DistanceTier.REGIONAL: 8, DistanceTier.NACIONAL: 12}
        ),
        ShippingService.SEDEX: MappingProxyType(
            {DistanceTier.LOCAL: 2, DistanceTier.REGIONAL: 4, DistanceTier.NACIONAL: 6}
        ),
    }
)

# (upper bound in kg, multiplier); anything heavier uses HEAVY_WEIGHT_MULTIPLIER.
WEIGHT_BRACKETS: Tuple[Tuple[float, float], ...] = (
    (0.5, 1.0),
    (1.0, 1.2),
    (2.0, 1.5),
    (5.0, 2.0),
    (10.0, 2.8),
)
HEAVY_WEIGHT_MULTIPLIER = 3.5

SERVICE_NAMES: Mapping[ShippingService, str] = MappingProxyType(
    {
        ShippingService.PAC: "PAC - Correios",
        ShippingService.SEDEX: "SEDEX - Correios",
    }
)

SERVICE_ORDER: Tuple[ShippingService, ...] = (ShippingService.PAC, ShippingService.SEDEX)


class ShippingError(ValueError):
    """Base class for shipping estimate errors the caller can correct."""


class InvalidPostalCode(ShippingError):
    """Raised when a CEP does not have exactly eight digits."""

    def __init__(self, postal_code: Any):
        super().__init__("Invalid postal code")
        self.postal_code = postal_code


class InvalidItemDimensions(ShippingError):
    """Raised when a cart line lacks usable weight or dimensions."""


@dataclass(frozen=True)
class ItemDimensions:
    """Physical attributes of a single cart line."""

    height_cm: float
    width_cm: float
    length_cm: float
    weight_grams: Optional[float] = None

    @property
    def volume_cm3(self) -> float:
        return self.height_cm * self.width_cm * self.length_cm

    @property
    def effective_weight_grams(self) -> float:
        return self.weight_grams or DEFAULT_ITEM_WEIGHT_GRAMS

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ItemDimensions":
        if not isinstance(payload, Mapping):
            raise InvalidItemDimensions("Each item must be an object")
        values: Dict[str, Optional[float]] = {}
        for name in ("height_cm", "width_cm", "length_cm", "weight_grams"):
            raw = payload.get(name)
            if raw in (None, ""):
                if name != "weight_grams":
                    raise InvalidItemDimensions(f"Field '{name}' is required")
                values[name] = None
                continue
            if isinstance(raw, bool):
                raise InvalidItemDimensions(f"Field '{name}' must be a number")
            try:
                number = float(raw)
            except (TypeError, ValueError):
                raise InvalidItemDimensions(f"Field '{name}' must be a number")
            if not math.isfinite(number):
                raise InvalidItemDimensions(f"Field '{name}' must be a finite number")
            if number < 0:
                raise InvalidItemDimensions(f"Field '{name}' must not be negative")
            values[name] = number
        return cls(**values)


ItemLike = Union[ItemDimensions, Mapping[str, Any]]


@dataclass(frozen=True)
class ShippingQuote:
    service: ShippingService
    name: str
    price: float
    days: int

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["service"] = self.service.value
        return payload


@dataclass(frozen=True)
class ShippingResult:
    """Outcome of :func:`estimate`: quotes on success, an error otherwise."""

    data: Optional[List[ShippingQuote]]
    error: Optional[ShippingError] = None
    fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> List[ShippingQuote]:
        if self.error is not None:
            raise self.error
        return list(self.data or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [quote.to_dict() for quote in self.data] if self.data is not None else None,
            "error": str(self.error) if self.error is not None else None,
        }


def get_state_for_postal_code(postal_code: str) -> str:
    """
    Resolves the federative unit from the first two digits of a normalised CEP.

    Args:
        postal_code (str): An eight digit CEP without separators.

    Returns:
        str: The two-letter state code, ``SP`` when no range matches.
    """
    prefix = int(postal_code[:2])
    for low, high, state in CEP_PREFIX_RANGES:
        if low <= prefix <= high:
            return state
    return DEFAULT_STATE


def get_region(state: str) -> Optional[Region]:
    return REGION_BY_STATE.get(state.upper())


def get_distance_tier(destination_state: str) -> DistanceTier:
    """
    Classifies a destination relative to the fixed origin state.

    This is a table lookup, not a distance metric: the south and centre-west
    regions are billed as regional no matter how far the state actually is.
    """
    state = destination_state.upper()
    if state == ORIGIN_STATE:
        return DistanceTier.LOCAL

    region = get_region(state)
    if region == ORIGIN_REGION or region in ADJACENT_REGIONS:
        return DistanceTier.REGIONAL
    return DistanceTier.NACIONAL


def calculate_real_weight(items: Sequence[ItemDimensions]) -> float:
    return sum(item.effective_weight_grams for item in items)


def calculate_volumetric_weight(items: Sequence[ItemDimensions]) -> float:
    """Volumetric weight in grams: total cm³ over the 6000 cm³/kg divisor."""
    total_volume = sum(item.volume_cm3 for item in items)
    return total_volume / VOLUMETRIC_DIVISOR_CM3_PER_KG * 1000


def calculate_chargeable_weight(items: Sequence[ItemDimensions]) -> float:
    return max(calculate_real_weight(items), calculate_volumetric_weight(items))


def get_weight_multiplier(weight_grams: float) -> float:
    """
    Looks up the price multiplier for a chargeable weight.

    Args:
        weight_grams (float): The chargeable weight in grams.

    Returns:
        float: The multiplier applied to the tier's base price.
    """
    weight_kg = weight_grams / 1000
    for upper_bound_kg, multiplier in WEIGHT_BRACKETS:
        if weight_kg <= upper_bound_kg:
            return multiplier
    return HEAVY_WEIGHT_MULTIPLIER


def build_quotes(tier: DistanceTier, multiplier: float) -> List[ShippingQuote]:
    return [
        ShippingQuote(
            service=service,
            name=SERVICE_NAMES[service],
            price=round(BASE_PRICES[service][tier] * multiplier, 2),
            days=DELIVERY_DAYS[service][tier],
        )
        for service in SERVICE_ORDER
    ]


def get_fallback_quotes() -> List[ShippingQuote]:
    """Generic quotes offered when the estimate cannot be computed."""
    return [
        ShippingQuote(ShippingService.PAC, SERVICE_NAMES[ShippingService.PAC], 25.90, 10),
        ShippingQuote(ShippingService.SEDEX, SERVICE_NAMES[ShippingService.SEDEX], 45.90, 5),
    ]


def _coerce_item(item: ItemLike) -> ItemDimensions:
    if isinstance(item, ItemDimensions):
        return item
    return ItemDimensions.from_mapping(item)


def estimate(destination_postal_code: Any, items: Iterable[ItemLike]) -> ShippingResult:
    """
    Quotes PAC and SEDEX for shipping ``items`` to ``destination_postal_code``.

    A CEP that does not have eight digits yields an error result. Any other
    failure while pricing is logged and answered with the generic fallback
    quotes so checkout can always proceed.

    Args:
        destination_postal_code (str): The destination CEP, with or without
            separators.
        items (Iterable): ``ItemDimensions`` or mappings with ``weight_grams``,
            ``height_cm``, ``width_cm`` and ``length_cm``.

    Returns:
        ShippingResult: PAC then SEDEX quotes, or an ``InvalidPostalCode`` error.
    """
    # --- 1. Input Validation ---
    postal_code = normalize_postal_code(destination_postal_code)
    if len(postal_code) != POSTAL_CODE_LENGTH:
        LOGGER.info("Rejected shipping estimate for malformed CEP %r", destination_postal_code)
        return ShippingResult(data=None, error=InvalidPostalCode(destination_postal_code))

    # --- 2. Calculation ---
    try:
        dimensions = [_coerce_item(item) for item in items]
        state = get_state_for_postal_code(postal_code)
        tier = get_distance_tier(state)
        chargeable_weight = calculate_chargeable_weight(dimensions)
        multiplier = get_weight_multiplier(chargeable_weight)
        quotes = build_quotes(tier, multiplier)
    except Exception:
        LOGGER.exception("Error calculating shipping for CEP %s; using fallback quotes", postal_code)
        return ShippingResult(data=get_fallback_quotes(), fallback=True)

    LOGGER.debug(
        "Shipping estimate for CEP %s: state=%s tier=%s chargeable=%.0fg multiplier=%s",
        postal_code,
        state,
        tier.value,
        chargeable_weight,
        multiplier,
    )
    return ShippingResult(data=quotes)


def is_eligible_for_free_shipping(subtotal: float, threshold: float = DEFAULT_FREE_SHIPPING_THRESHOLD) -> bool:
    return subtotal >= threshold


def estimate_shipping_cost(dest_cep_str, weight_str, height_str, width_str, length_str):
    """
    Prints a shipping estimate for a single package entered at the prompt.

    Args:
        dest_cep_str (str): The destination CEP.
        weight_str (str): The package weight in grams.
        height_str (str): Package height in centimetres.
        width_str (str): Package width in centimetres.
        length_str (str): Package length in centimetres.
    """
    # --- 1. Input Validation ---
    try:
        item = ItemDimensions.from_mapping(
            {
                "weight_grams": weight_str,
                "height_cm": height_str,
                "width_cm": width_str,
                "length_cm": length_str,
            }
        )
    except InvalidItemDimensions as exc:
        print(f"Error: {exc}. Please enter non-negative numbers.")
        return

    # --- 2. Calculation ---
    result = estimate(dest_cep_str, [item])
    if not result.ok:
        print("Error: Invalid CEP. Please enter an 8-digit CEP (e.g., 38400-000).")
        return

    postal_code = normalize_postal_code(dest_cep_str)
    state = get_state_for_postal_code(postal_code)

    # --- 3. Display Results ---
    print("\n--- Shipping Cost Estimate ---")
    print(f"  Origin:            Uberlândia/{ORIGIN_STATE}")
    print(f"  Destination CEP:   {postal_code[:5]}-{postal_code[5:]} ({state})")
    print(f"  Distance Tier:     {get_distance_tier(state).value}")
    print(f"  Actual Weight:     {item.effective_weight_grams:.0f} g")
    print(f"  Chargeable Weight: {calculate_chargeable_weight([item]):.0f} g")
    for quote in result.data or []:
        print(f"  {quote.name:<17} R$ {quote.price:>7.2f}  ({quote.days} business days)")

    print("\nDisclaimer: This is a simplified estimate and not an official Correios quote.")


if __name__ == "__main__":
    print("Correios Shipping Cost Estimator (PAC / SEDEX)")

    dest_cep_input = input("Enter the destination CEP (e.g., 01310-000): ")
    weight_input = input("Enter the package weight in grams (e.g., 300): ")
    height_input = input("Enter the package height in cm (e.g., 10): ")
    width_input = input("Enter the package width in cm (e.g., 20): ")
    length_input = input("Enter the package length in cm (e.g., 30): ")

    estimate_shipping_cost(dest_cep_input, weight_input, height_input, width_input, length_input)
