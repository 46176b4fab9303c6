"""Delta-only merge of a cart into an already placed order."""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from schemas import CartItem, Order


@dataclass(frozen=True)
class MergeResult:
    merged_items: List[CartItem]
    added_total: int
    new_total: int
    # item id -> quantity added by this merge
    deltas: Dict[str, int] = field(default_factory=dict)

    @property
    def has_additions(self) -> bool:
        return bool(self.deltas)


def compute_merge(existing_order: Order, current_cart: Sequence[CartItem]) -> MergeResult:
    """
    Merge ``current_cart`` into ``existing_order.items``.

    Only positive differences are applied: a line already on the order grows
    by ``cart quantity - ordered quantity``, an item not on the order is added
    with its full cart quantity, and anything else is left alone. Existing
    lines are never decreased or dropped, even for stale input.

    For a line already on the order the added amount is priced at the
    order's unit price, so the new total always equals the recomputed sum of
    the merged lines.
    """
    merged: Dict[str, CartItem] = {item.id: item.model_copy() for item in existing_order.items}
    deltas: Dict[str, int] = {}
    added_total = 0

    for entry in current_cart:
        line = merged.get(entry.id)
        existing_qty = line.quantity if line is not None else 0
        delta = entry.quantity - existing_qty
        if delta <= 0:
            continue
        if line is not None:
            line.quantity += delta
            added_total += line.price * delta
        else:
            merged[entry.id] = entry.model_copy()
            added_total += entry.price * entry.quantity
        deltas[entry.id] = deltas.get(entry.id, 0) + delta

    return MergeResult(
        merged_items=list(merged.values()),
        added_total=added_total,
        new_total=existing_order.total_amount + added_total,
        deltas=deltas,
    )


def items_total(items: Sequence[CartItem]) -> int:
    return sum(item.price * item.quantity for item in items)
