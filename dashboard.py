"""
Staff dashboard.

``derive_views`` turns the flat order list into everything the dashboard
shows. It is a pure function of (orders, selected date, search, now, zone)
and is recomputed from scratch on every change. ``DashboardSession`` holds
the live subscription and the staff's selections, and applies status
changes optimistically.
"""

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from cart import CartRegistry
from config import DASHBOARD_TIMEZONE, RECENT_ORDER_MINUTES
from errors import OrderNotFoundError, OrderValidationError, OrderWriteError, TransitionNotAllowedError
from gateway import SyncGateway
from schemas import DashboardViews, Order, OrderActions, OrderView

logger = logging.getLogger(__name__)


def default_zone() -> tzinfo:
    return ZoneInfo(DASHBOARD_TIMEZONE)


def local_date(moment: datetime, tz: tzinfo) -> str:
    return moment.astimezone(tz).date().isoformat()


def is_new_or_updated(order: Order, now: datetime, window_minutes: int = RECENT_ORDER_MINUTES) -> bool:
    if order.updated_at is not None:
        return True
    return now - order.created_at < timedelta(minutes=window_minutes)


def sort_orders(orders: Iterable[Order], now: datetime) -> List[Order]:
    """Open orders first, then recent ones, newest first within each."""
    return sorted(
        orders,
        key=lambda o: (
            o.order_status == "completed",
            not is_new_or_updated(o, now),
            -o.created_at.timestamp(),
        ),
    )


def matches_search(order: Order, search: str) -> bool:
    q = search.strip().lower()
    if not q:
        return True
    table = order.table_number.strip().lower()
    return q in order.customer_name.lower() or q in table or q in f"table {table}"


def refusal_reason(order: Order, action: str) -> Optional[str]:
    """Why ``action`` ("mark_paid" or "mark_done") cannot be applied, or None."""
    if order.order_status == "completed":
        return "Order is already completed"
    if action == "mark_paid" and order.payment_status == "completed":
        return "Payment is already marked as received"
    return None


def order_actions(order: Order) -> OrderActions:
    done = order.order_status == "completed"
    return OrderActions(
        can_mark_paid=not done and order.payment_status == "pending",
        can_mark_done=not done,
        can_update=not done,
    )


def history_dates(orders: Iterable[Order], selected_date: str, tz: tzinfo) -> List[str]:
    dates = {local_date(o.created_at, tz) for o in orders}
    dates.add(selected_date)
    return sorted(dates, reverse=True)


def derive_views(
    orders: List[Order],
    selected_date: str,
    search: str,
    now: datetime,
    tz: Optional[tzinfo] = None,
    loading: bool = False,
) -> DashboardViews:
    tz = tz or default_zone()
    date_filtered = [o for o in orders if local_date(o.created_at, tz) == selected_date]
    filtered = [o for o in date_filtered if matches_search(o, search)]

    pending = [o for o in date_filtered if o.payment_status == "pending"]
    completed = [o for o in date_filtered if o.payment_status == "completed"]

    def present(group: Iterable[Order]) -> List[OrderView]:
        return [
            OrderView(
                **o.model_dump(),
                is_new_or_updated=is_new_or_updated(o, now),
                actions=order_actions(o),
            )
            for o in sort_orders(group, now)
        ]

    return DashboardViews(
        selected_date=selected_date,
        search=search,
        loading=loading,
        total_orders=len(date_filtered),
        pending_count=len(pending),
        completed_count=len(completed),
        total_revenue=sum(o.total_amount for o in completed),
        all_active_orders=present(o for o in filtered if o.order_status != "completed"),
        cash_orders=present(o for o in filtered if o.payment_method == "cash"),
        online_orders=present(o for o in filtered if o.payment_method == "online"),
        history_dates=history_dates(orders, selected_date, tz),
    )


class DashboardSession:
    def __init__(
        self,
        gateway: SyncGateway,
        tz: Optional[tzinfo] = None,
        selected_date: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.tz = tz or default_zone()
        self.clock = clock or gateway.clock
        self.selected_date = selected_date or local_date(self.clock(), self.tz)
        self.search = ""
        self.orders: List[Order] = []
        self.loading = True
        self._unsubscribe = None
        self._on_change: Optional[Callable[[], None]] = None

    def open(self, on_change: Optional[Callable[[], None]] = None) -> None:
        self._on_change = on_change
        self._unsubscribe = self.gateway.subscribe_orders(self._on_snapshot, self._on_error)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._on_change = None

    def _on_snapshot(self, orders: List[Order]) -> None:
        self.orders = orders
        self.loading = False
        self._notify()

    def _on_error(self, error: Exception) -> None:
        # keep the last list; just stop showing the spinner
        self.loading = False
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def select_date(self, value: str) -> None:
        # only the extended form; 3.11+ also parses "20250115"
        try:
            parsed = date.fromisoformat(value)
        except (TypeError, ValueError):
            raise OrderValidationError("Date must be YYYY-MM-DD")
        if parsed.isoformat() != value:
            raise OrderValidationError("Date must be YYYY-MM-DD")
        self.selected_date = value

    def set_search(self, value: str) -> None:
        self.search = value or ""

    def views(self, now: Optional[datetime] = None) -> DashboardViews:
        return derive_views(
            self.orders,
            self.selected_date,
            self.search,
            now or self.clock(),
            self.tz,
            loading=self.loading,
        )

    def _find(self, order_id: str) -> Order:
        for order in self.orders:
            if order.id == order_id:
                return order
        raise OrderNotFoundError(order_id)

    def mark_paid(self, order_id: str) -> None:
        order = self._find(order_id)
        reason = refusal_reason(order, "mark_paid")
        if reason:
            raise TransitionNotAllowedError(reason)
        self._apply_optimistically(order_id, {"payment_status": "completed"}, {"paymentStatus": "completed"})

    def mark_order_done(self, order_id: str) -> None:
        order = self._find(order_id)
        reason = refusal_reason(order, "mark_done")
        if reason:
            raise TransitionNotAllowedError(reason)
        self._apply_optimistically(order_id, {"order_status": "completed"}, {"orderStatus": "completed"})

    def request_update_order(self, order_id: str, carts: CartRegistry) -> str:
        """Open an update flow seeded from the order; the record itself is untouched."""
        return carts.open_update(self._find(order_id))

    def _apply_optimistically(self, order_id: str, changes: Dict[str, str], patch: Dict[str, str]) -> None:
        snapshot = list(self.orders)
        self.orders = [o.model_copy(update=changes) if o.id == order_id else o for o in self.orders]
        self._notify()
        try:
            self.gateway.update_order(order_id, patch)
        except (OrderWriteError, OrderNotFoundError):
            logger.warning("Rolling back %s on order %s", ", ".join(patch), order_id)
            self.orders = snapshot
            self._notify()
            raise
