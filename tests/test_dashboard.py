from datetime import timedelta
from unittest import TestCase
from unittest.mock import patch
from zoneinfo import ZoneInfo

from pymongo.errors import PyMongoError

from cart import CartRegistry, UpdateFlow
from dashboard import (
    DashboardSession,
    derive_views,
    history_dates,
    is_new_or_updated,
    local_date,
    matches_search,
    sort_orders,
)
from errors import OrderNotFoundError, OrderValidationError, OrderWriteError, TransitionNotAllowedError
from tests.support import UTC, at, make_order, mongo_gateway, order_fields

KATHMANDU = ZoneInfo("Asia/Kathmandu")


def ids(orders):
    return [o.id for o in orders]


class DeriveViewsTests(TestCase):
    """Filtering, counters and groupings shown on the dashboard"""

    def setUp(self):
        self.now = at(2025, 1, 15, 18)

    def test_date_filter_uses_local_date(self):
        """Only orders created on the selected local date are shown"""
        orders = [
            make_order("a", created_at=at(2025, 1, 14, 6)),
            make_order("b", created_at=at(2025, 1, 15, 6)),
            make_order("c", created_at=at(2025, 1, 15, 9)),
            make_order("d", created_at=at(2025, 1, 16, 6)),
        ]
        views = derive_views(orders, "2025-01-15", "", self.now, KATHMANDU)

        self.assertEqual(views.total_orders, 2)
        self.assertEqual(sorted(ids(views.all_active_orders)), ["b", "c"])

    def test_local_date_crosses_utc_midnight(self):
        """20:00 UTC on the 14th is already the 15th in Kathmandu (+05:45)"""
        late = make_order("late", created_at=at(2025, 1, 14, 20))

        self.assertEqual(local_date(late.created_at, KATHMANDU), "2025-01-15")
        self.assertEqual(local_date(late.created_at, UTC), "2025-01-14")
        views = derive_views([late], "2025-01-15", "", self.now, KATHMANDU)
        self.assertEqual(ids(views.all_active_orders), ["late"])

    def test_search_matches_table_substring_not_unrelated_name(self):
        """Searching 5 finds tables 5 and 15 but not a customer called Asha"""
        orders = [
            make_order("t5", table_number="5", customer_name="Bikash"),
            make_order("t15", table_number="15", customer_name="Sita"),
            make_order("asha", table_number="3", customer_name="Asha"),
        ]
        views = derive_views(orders, "2025-01-15", "5", self.now, UTC)

        self.assertEqual(sorted(ids(views.all_active_orders)), ["t15", "t5"])

    def test_search_by_name_and_table_label(self):
        order = make_order(table_number="7", customer_name="Asha Gurung")

        self.assertTrue(matches_search(order, "asha"))
        self.assertTrue(matches_search(order, "GURUNG"))
        self.assertTrue(matches_search(order, "table 7"))
        self.assertTrue(matches_search(order, "  "))
        self.assertFalse(matches_search(order, "table 8"))

    def test_counters_ignore_search(self):
        """Pending/paid counters and revenue are over the whole day, not the search"""
        orders = [
            make_order("a", table_number="1", payment_status="completed"),
            make_order("b", table_number="2", payment_status="completed", items=None, total_amount=40),
            make_order("c", table_number="3"),
            make_order("old", payment_status="completed", created_at=at(2025, 1, 10)),
        ]
        views = derive_views(orders, "2025-01-15", "table 3", self.now, UTC)

        self.assertEqual(views.pending_count, 1)
        self.assertEqual(views.completed_count, 2)
        self.assertEqual(views.total_revenue, 80)
        self.assertEqual(ids(views.all_active_orders), ["c"])

    def test_groupings_overlap(self):
        """An order shows up in every grouping it qualifies for"""
        orders = [
            make_order("cash-open", payment_method="cash"),
            make_order("cash-done", payment_method="cash", order_status="completed"),
            make_order(
                "online-open",
                payment_method="online",
                payment_screenshot_url="data:image/png;base64,AAAA",
            ),
        ]
        views = derive_views(orders, "2025-01-15", "", self.now, UTC)

        self.assertEqual(sorted(ids(views.all_active_orders)), ["cash-open", "online-open"])
        self.assertEqual(ids(views.cash_orders), ["cash-open", "cash-done"])
        self.assertEqual(ids(views.online_orders), ["online-open"])

    def test_actions_disabled_for_completed_orders(self):
        orders = [
            make_order("paid", payment_status="completed"),
            make_order("done", order_status="completed"),
        ]
        views = derive_views(orders, "2025-01-15", "", self.now, UTC)
        by_id = {o.id: o.actions for o in views.cash_orders}

        self.assertFalse(by_id["paid"].can_mark_paid)
        self.assertTrue(by_id["paid"].can_mark_done)
        self.assertFalse(by_id["done"].can_mark_paid)
        self.assertFalse(by_id["done"].can_mark_done)
        self.assertFalse(by_id["done"].can_update)

    def test_history_dates(self):
        """Dates across all orders plus the selected one, newest first"""
        orders = [
            make_order("a", created_at=at(2025, 1, 14)),
            make_order("b", created_at=at(2025, 1, 16)),
            make_order("c", created_at=at(2025, 1, 14, 15)),
        ]
        self.assertEqual(
            history_dates(orders, "2025-01-20", UTC),
            ["2025-01-20", "2025-01-16", "2025-01-14"],
        )
        views = derive_views(orders, "2025-01-16", "zzz", self.now, UTC)
        self.assertEqual(views.history_dates, ["2025-01-16", "2025-01-14"])

    def test_wire_shape_is_camel_case(self):
        views = derive_views([make_order()], "2025-01-15", "", self.now, UTC)
        data = views.model_dump(mode="json", by_alias=True)

        self.assertIn("allActiveOrders", data)
        order = data["cashOrders"][0]
        self.assertEqual(order["tableNumber"], "1")
        self.assertIn("isNewOrUpdated", order)
        self.assertIn("canMarkPaid", order["actions"])


class RecencyAndSortTests(TestCase):
    """Highlighting of fresh orders and the display order"""

    def test_recent_window(self):
        """Created less than ten minutes ago counts as new; the flag follows now"""
        order = make_order(created_at=at(2025, 1, 15, 12, 0))

        self.assertTrue(is_new_or_updated(order, at(2025, 1, 15, 12, 9)))
        self.assertFalse(is_new_or_updated(order, at(2025, 1, 15, 12, 10)))

    def test_updated_orders_stay_flagged(self):
        order = make_order(created_at=at(2025, 1, 15, 8), updated_at=at(2025, 1, 15, 9))
        self.assertTrue(is_new_or_updated(order, at(2025, 1, 15, 20)))

    def test_flag_is_recomputed_per_derivation(self):
        """The same list derived later no longer highlights an old order"""
        orders = [make_order(created_at=at(2025, 1, 15, 12, 0))]

        early = derive_views(orders, "2025-01-15", "", at(2025, 1, 15, 12, 5), UTC)
        later = derive_views(orders, "2025-01-15", "", at(2025, 1, 15, 12, 30), UTC)

        self.assertTrue(early.all_active_orders[0].is_new_or_updated)
        self.assertFalse(later.all_active_orders[0].is_new_or_updated)

    def test_updated_pending_before_completed(self):
        """Updated pending order comes first even though the completed one is newer"""
        completed = make_order("done", order_status="completed", created_at=at(2025, 1, 15, 11))
        updated = make_order("updated", created_at=at(2025, 1, 15, 9), updated_at=at(2025, 1, 15, 11, 30))

        ordered = sort_orders([completed, updated], at(2025, 1, 15, 12))
        self.assertEqual(ids(ordered), ["updated", "done"])

    def test_full_ordering(self):
        now = at(2025, 1, 15, 12)
        orders = [
            make_order("old-open", created_at=now - timedelta(hours=3)),
            make_order("done-new", order_status="completed", created_at=now - timedelta(minutes=1)),
            make_order("fresh", created_at=now - timedelta(minutes=5)),
            make_order("older-open", created_at=now - timedelta(hours=4)),
            make_order("fresher", created_at=now - timedelta(minutes=2)),
            make_order("done-old", order_status="completed", created_at=now - timedelta(hours=5)),
            make_order("touched", created_at=now - timedelta(hours=6), updated_at=now - timedelta(hours=1)),
        ]
        ordered = sort_orders(orders, now)

        self.assertEqual(
            ids(ordered),
            ["fresher", "fresh", "touched", "old-open", "older-open", "done-new", "done-old"],
        )

    def test_every_derived_list_is_sorted(self):
        now = at(2025, 1, 15, 12)
        orders = [
            make_order("done", order_status="completed", created_at=now - timedelta(minutes=1)),
            make_order("open", created_at=now - timedelta(hours=2)),
            make_order("fresh", created_at=now - timedelta(minutes=3)),
        ]
        views = derive_views(orders, "2025-01-15", "", now, UTC)

        self.assertEqual(ids(views.cash_orders), ["fresh", "open", "done"])
        self.assertEqual(ids(views.all_active_orders), ["fresh", "open"])


class DashboardSessionTests(TestCase):
    """Live dashboard state over the sync gateway"""

    def setUp(self):
        self.gateway = mongo_gateway(now=at(2025, 1, 15, 12))
        self.first = self.gateway.create_order(order_fields(table="1", created_at=at(2025, 1, 15, 9)))
        self.second = self.gateway.create_order(
            order_fields(table="2", method="online", created_at=at(2025, 1, 15, 10))
        )
        self.changes = 0
        self.session = DashboardSession(self.gateway, tz=UTC)

    def tearDown(self):
        self.session.close()

    def on_change(self):
        self.changes += 1

    def test_defaults_to_today(self):
        self.assertEqual(self.session.selected_date, "2025-01-15")
        self.assertTrue(self.session.loading)

    def test_open_receives_snapshot(self):
        self.session.open(self.on_change)

        self.assertFalse(self.session.loading)
        self.assertEqual(ids(self.session.orders), [self.second, self.first])
        self.assertEqual(self.changes, 1)
        self.assertEqual(self.session.views().total_orders, 2)

    def test_new_orders_arrive_live(self):
        self.session.open(self.on_change)
        third = self.gateway.create_order(order_fields(table="3", created_at=at(2025, 1, 15, 11)))

        self.assertEqual(self.session.orders[0].id, third)
        self.assertEqual(self.changes, 2)

    def test_close_stops_updates(self):
        self.session.open(self.on_change)
        self.session.close()
        self.gateway.create_order(order_fields(table="3"))

        self.assertEqual(len(self.session.orders), 2)
        self.assertEqual(self.changes, 1)

    def test_read_failure_ends_loading(self):
        with patch("database.get_documents", side_effect=PyMongoError("unavailable")):
            self.session.open(self.on_change)

        self.assertFalse(self.session.loading)
        self.assertEqual(self.session.orders, [])
        self.assertEqual(self.changes, 1)

    def test_select_date_and_search(self):
        self.session.open()
        self.session.set_search("table 2")
        self.assertEqual(ids(self.session.views().all_active_orders), [self.second])

        self.session.select_date("2025-01-14")
        views = self.session.views()
        self.assertEqual(views.total_orders, 0)
        self.assertEqual(views.history_dates, ["2025-01-15", "2025-01-14"])

    def test_select_date_rejects_garbage(self):
        with self.assertRaises(OrderValidationError):
            self.session.select_date("15/01/2025")
        self.assertEqual(self.session.selected_date, "2025-01-15")

    def test_select_date_requires_extended_form(self):
        for value in ("20250115", "2025-1-5", ""):
            with self.assertRaises(OrderValidationError):
                self.session.select_date(value)
        self.assertEqual(self.session.selected_date, "2025-01-15")
        self.assertEqual(self.session.views().history_dates, ["2025-01-15"])

    def test_mark_paid(self):
        self.session.open()
        self.session.mark_paid(self.first)

        self.assertEqual(self.gateway.get_order(self.first).payment_status, "completed")
        views = self.session.views()
        self.assertEqual(views.completed_count, 1)
        self.assertEqual(views.total_revenue, 40)

    def test_mark_paid_twice_not_allowed(self):
        self.session.open()
        self.session.mark_paid(self.first)
        with self.assertRaises(TransitionNotAllowedError):
            self.session.mark_paid(self.first)

    def test_mark_order_done_is_terminal(self):
        """Once completed, no further transition is attempted"""
        self.session.open()
        self.session.mark_order_done(self.first)
        self.assertEqual(self.gateway.get_order(self.first).order_status, "completed")

        with patch.object(self.gateway, "update_order") as update:
            with self.assertRaises(TransitionNotAllowedError):
                self.session.mark_order_done(self.first)
            with self.assertRaises(TransitionNotAllowedError):
                self.session.mark_paid(self.first)
            update.assert_not_called()

    def test_refusal_reasons(self):
        self.session.open()
        self.session.mark_paid(self.first)
        with self.assertRaises(TransitionNotAllowedError) as paid_twice:
            self.session.mark_paid(self.first)
        self.assertEqual(paid_twice.exception.message, "Payment is already marked as received")

        self.session.mark_order_done(self.second)
        with self.assertRaises(TransitionNotAllowedError) as unpaid_but_done:
            self.session.mark_paid(self.second)
        self.assertEqual(unpaid_but_done.exception.message, "Order is already completed")
        self.assertEqual(self.gateway.get_order(self.second).payment_status, "pending")

    def test_failed_write_rolls_back(self):
        """The optimistic change is undone when the write fails"""
        self.session.open(self.on_change)
        with patch("database.update_document", side_effect=PyMongoError("permission denied")):
            with self.assertRaises(OrderWriteError):
                self.session.mark_paid(self.first)

        order = next(o for o in self.session.orders if o.id == self.first)
        self.assertEqual(order.payment_status, "pending")
        self.assertEqual(self.gateway.get_order(self.first).payment_status, "pending")
        # snapshot, optimistic apply, rollback
        self.assertEqual(self.changes, 3)

    def test_unknown_order(self):
        self.session.open()
        with self.assertRaises(OrderNotFoundError):
            self.session.mark_paid("missing")

    def test_request_update_order_does_not_mutate(self):
        self.session.open()
        carts = CartRegistry()
        cart_id = self.session.request_update_order(self.first, carts)

        self.assertIsInstance(carts.get(cart_id), UpdateFlow)
        order = self.gateway.get_order(self.first)
        self.assertIsNone(order.updated_at)
        self.assertEqual(order.order_status, "pending")
