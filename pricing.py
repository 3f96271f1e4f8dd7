"""
Price composition for configurable products.

A line price is the (possibly discounted) base price, plus the price modifier
of every selected variant option at every nesting level, plus add-ons. A sale
discount only ever touches the base price.
"""

import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

MAX_DISCOUNT_PERCENT = 95


class PriceBreakdown(BaseModel):
    base_price: float
    discount_percent: float
    discounted_base: float
    variant_adjustment: float
    addons_total: float
    total: float


class AddonLine(BaseModel):
    name: str
    option: str
    quantity: int
    unit_price: float
    price: float


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_percent(percent: Any) -> float:
    """Clamp to [0, 95] without rounding; non-numbers and NaN become 0."""
    if isinstance(percent, bool) or not isinstance(percent, (int, float)):
        return 0
    if math.isnan(percent) or percent <= 0:
        return 0
    return min(MAX_DISCOUNT_PERCENT, percent)


def clamp_discount(percent: Any) -> int:
    """Whole-number percentage stored on a sale."""
    return round_half_up(clamp_percent(percent))


def calculate_sale_price(price: float, discount_percent: float) -> float:
    pct = clamp_percent(discount_percent)
    if pct <= 0:
        return price
    return round_half_up(price * (1 - pct / 100))


def compose_price(
    base_price: float,
    variant_modifiers: Iterable[float] = (),
    addons: Iterable[Tuple[float, int]] = (),
    discount_percent: float = 0,
) -> PriceBreakdown:
    """Sum the discounted base, variant modifiers and add-on (price, quantity) pairs.

    >>> compose_price(1000, [200], [(50, 2)], 10).total
    1200.0
    """
    pct = clamp_percent(discount_percent)
    discounted = calculate_sale_price(base_price, pct)
    adjustment = sum(variant_modifiers)
    addons_total = sum(price * qty for price, qty in addons)
    return PriceBreakdown(
        base_price=base_price,
        discount_percent=pct,
        discounted_base=discounted,
        variant_adjustment=adjustment,
        addons_total=addons_total,
        total=discounted + adjustment + addons_total,
    )

# -----------------------------
# Option tree resolution
# -----------------------------

def _matches(option: Dict[str, Any], wanted: Optional[str]) -> bool:
    if wanted is None:
        return False
    label = option.get("label")
    value = option.get("value")
    if wanted == label or wanted == value:
        return True
    low = wanted.lower()
    return (isinstance(label, str) and label.lower() == low) or (isinstance(value, str) and value.lower() == low)


def find_option(variants: List[Dict[str, Any]], selection: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    """Locate (variant index, option index) for one selection level."""
    name = selection.get("variant_name")
    wanted = selection.get("option_value") or selection.get("option_label")
    for v_idx, variant in enumerate(variants or []):
        if variant.get("name") != name:
            continue
        for o_idx, option in enumerate(variant.get("options") or []):
            if _matches(option, wanted):
                return v_idx, o_idx
        return v_idx, None
    return None, None


def walk_selection(variants: List[Dict[str, Any]], selection: Dict[str, Any], path: str = "variants"):
    """Resolve one selection path through the option tree.

    Yields ``(path, option)`` for every matched option, outermost first. Raises
    ``LookupError`` naming the first level that does not resolve.
    """
    v_idx, o_idx = find_option(variants, selection)
    if v_idx is None:
        raise LookupError(f"Variant not found: {selection.get('variant_name')}")
    if o_idx is None:
        wanted = selection.get("option_value") or selection.get("option_label")
        raise LookupError(f"Option not found: {wanted} in variant {selection.get('variant_name')}")

    option = variants[v_idx]["options"][o_idx]
    option_path = f"{path}.{v_idx}.options.{o_idx}"
    yield option_path, option
    for sub in selection.get("sub_variants") or []:
        yield from walk_selection(option.get("sub_variants") or [], sub, f"{option_path}.sub_variants")


def leaf_options(variants: List[Dict[str, Any]], selection: Dict[str, Any], path: str = "variants"):
    """Yield ``(path, option)`` for the deepest matched option of each branch."""
    v_idx, o_idx = find_option(variants, selection)
    if v_idx is None:
        raise LookupError(f"Variant not found: {selection.get('variant_name')}")
    if o_idx is None:
        wanted = selection.get("option_value") or selection.get("option_label")
        raise LookupError(f"Option not found: {wanted} in variant {selection.get('variant_name')}")

    option = variants[v_idx]["options"][o_idx]
    option_path = f"{path}.{v_idx}.options.{o_idx}"
    subs = selection.get("sub_variants") or []
    if not subs:
        yield option_path, option
        return
    for sub in subs:
        yield from leaf_options(option.get("sub_variants") or [], sub, f"{option_path}.sub_variants")


def selected_modifiers(variants: List[Dict[str, Any]], selections: List[Dict[str, Any]]) -> List[float]:
    """Price modifiers of every matched option; unresolved selections are skipped."""
    modifiers = []
    for selection in selections:
        try:
            matched = list(walk_selection(variants, selection))
        except LookupError:
            continue
        modifiers.extend(option.get("price_modifier") or 0 for _, option in matched)
    return modifiers


def available_stock(variants: List[Dict[str, Any]], selections: List[Dict[str, Any]]) -> int:
    if not selections:
        return 0
    lowest = None
    for selection in selections:
        try:
            leaves = list(leaf_options(variants, selection))
        except LookupError:
            continue
        for _, option in leaves:
            stock = option.get("stock") or 0
            lowest = stock if lowest is None else min(lowest, stock)
    return max(0, lowest) if lowest is not None else 0


def missing_required_variants(variants: List[Dict[str, Any]], selections: List[Dict[str, Any]]) -> List[str]:
    chosen = {s.get("variant_name") for s in selections}
    return [v["name"] for v in variants or [] if v.get("required") and v.get("name") not in chosen]


def missing_required_addons(addons: List[Dict[str, Any]], selected: List[Dict[str, Any]]) -> List[str]:
    chosen = {s.get("addon_name") for s in selected}
    return [a["name"] for a in addons or [] if a.get("required") and a.get("name") not in chosen]


def addon_lines(addons: List[Dict[str, Any]], selected: List[Dict[str, Any]]) -> List[AddonLine]:
    lines = []
    for sel in selected:
        addon = next((a for a in addons or [] if a.get("name") == sel.get("addon_name")), None)
        if not addon:
            continue
        option = next((o for o in addon.get("options") or [] if o.get("label") == sel.get("option_label")), None)
        if not option:
            continue
        qty = max(1, min(int(sel.get("quantity") or 1), int(addon.get("max_quantity") or 1)))
        lines.append(AddonLine(
            name=addon["name"],
            option=option["label"],
            quantity=qty,
            unit_price=option.get("price") or 0,
            price=(option.get("price") or 0) * qty,
        ))
    return lines


def combined_specifications(base: List[Dict[str, str]], variants: List[Dict[str, Any]], selections: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    specs = [dict(s) for s in base or []]
    for selection in selections:
        try:
            matched = list(walk_selection(variants, selection))
        except LookupError:
            continue
        for _, option in matched:
            for spec in option.get("specifications") or []:
                existing = next((i for i, s in enumerate(specs) if s.get("name") == spec.get("name")), None)
                if existing is None:
                    specs.append(dict(spec))
                else:
                    specs[existing] = dict(spec)
    return specs

# -----------------------------
# Sales
# -----------------------------

def find_active_sale(db, product: Dict[str, Any], now) -> Optional[Dict[str, Any]]:
    """Most recently created active sale that covers the product, if any."""
    targets = [{"product_ids": str(product.get("_id"))}]
    if product.get("category"):
        targets.append({"category_slugs": product["category"]})
    cursor = db["sale"].find({
        "active": True,
        "ends_at": {"$gt": now},
        "$or": targets,
    }).sort([("created_at", -1), ("_id", -1)]).limit(1)
    for sale in cursor:
        return sale
    return None
