"""
Inventory adjustments driven by orders.

Each order item is handled on its own: a failure for one item is reported in
its result and never stops the others. Within an item, every selection path is
resolved before anything is written, and all increments go out in one
``update_one`` so an item is either fully adjusted or left untouched.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from database import to_object_id
from pricing import leaf_options
from schemas import OrderItem

logger = logging.getLogger(__name__)


class StockUpdateResult(BaseModel):
    success: bool
    product_id: str
    error: Optional[str] = None


def _as_dict(item: Union[OrderItem, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump()
    return item


def find_product(db, reference: str) -> Optional[Dict[str, Any]]:
    oid = to_object_id(reference)
    if oid is not None:
        product = db["product"].find_one({"_id": oid})
        if product:
            return product
    return db["product"].find_one({"slug": reference})


def plan_increments(product: Dict[str, Any], item: Dict[str, Any], delta: int) -> Dict[str, int]:
    """Map of dotted stock paths to increments for one order item.

    Raises ``LookupError`` when a selection does not resolve against the
    product's current option tree.
    """
    selections = item.get("variants") or []
    if not selections:
        return {"stock": delta}

    if not product.get("variants"):
        raise LookupError("Product has no variants for stock adjustment")

    increments: Dict[str, int] = {}
    for selection in selections:
        for path, _ in leaf_options(product["variants"], selection):
            key = f"{path}.stock"
            increments[key] = increments.get(key, 0) + delta
    return increments


def _adjust(db, order_items, sign: int, action: str) -> List[StockUpdateResult]:
    results: List[StockUpdateResult] = []
    for raw in order_items:
        item = _as_dict(raw)
        product_id = str(item.get("product") or "")
        quantity = int(item.get("quantity") or 0)
        try:
            product = find_product(db, product_id)
            if not product:
                logger.warning("Product not found for stock %s: %s", action, product_id)
                results.append(StockUpdateResult(success=False, product_id=product_id, error="Product not found"))
                continue

            increments = plan_increments(product, item, sign * quantity)
            db["product"].update_one({"_id": product["_id"]}, {"$inc": increments})
            logger.info("Stock %s for product %s: %s", action, product_id, increments)
            results.append(StockUpdateResult(success=True, product_id=product_id))
        except LookupError as e:
            logger.warning("Stock %s skipped for product %s: %s", action, product_id, e)
            results.append(StockUpdateResult(success=False, product_id=product_id, error=str(e)))
        except Exception as e:
            logger.exception("Error during stock %s for product %s", action, product_id)
            results.append(StockUpdateResult(success=False, product_id=product_id, error=str(e) or "Unknown error"))
    return results


def restore_stock_for_cancelled_order(db, order_items) -> List[StockUpdateResult]:
    return _adjust(db, order_items, 1, "restoration")


def reduce_stock_for_order(db, order_items) -> List[StockUpdateResult]:
    return _adjust(db, order_items, -1, "reduction")


def summarize(results: List[StockUpdateResult]) -> Dict[str, Any]:
    successful = sum(1 for r in results if r.success)
    return {
        "attempted": len(results),
        "successful": successful,
        "failed": len(results) - successful,
        "details": [r.model_dump() for r in results],
    }
