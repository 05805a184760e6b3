from __future__ import annotations

from datetime import date, datetime

import pytest

from tailorbook.extensions import db
from tailorbook.models import Expense, Order, OrderStatus
from tailorbook.services.reports import dashboard_stats, greeting, report_summary

from .conftest import make_customer, make_profile


def _o(total, advance, status=OrderStatus.RECEIVED, created_at=datetime(2025, 1, 3, 10)):
    return Order(total_amount=total, advance_amount=advance, status=status, created_at=created_at)


def _e(amount, spent_on, created_at=datetime(2025, 1, 1)):
    return Expense(category="Material", amount=amount, date=spent_on, created_at=created_at)


@pytest.mark.parametrize(
    "hour,expected",
    [(0, "Good Morning"), (11, "Good Morning"), (12, "Good Afternoon"), (16, "Good Afternoon"), (17, "Good Evening")],
)
def test_greeting(hour, expected):
    assert greeting(datetime(2025, 1, 3, hour, 30)) == expected


# =========================================================
# Dashboard
# =========================================================
def test_dashboard_stats():
    orders = [
        _o(1000, 300),
        _o(500, 500, OrderStatus.DELIVERED, datetime(2025, 1, 3, 9)),
        _o(800, 0, OrderStatus.COMPLETED, datetime(2025, 1, 2, 18)),
        _o(1200, 200, OrderStatus.STITCHING, datetime(2025, 1, 1, 12)),
    ]
    stats = dashboard_stats(orders, today=date(2025, 1, 3))

    assert stats.today_orders == 2
    assert stats.pending_delivery == 2
    assert stats.pending_payment == 700 + 800 + 1000
    assert [o.total_amount for o in stats.recent_orders] == [1000, 500, 800, 1200]


def test_dashboard_recent_orders_capped():
    orders = [_o(100, 0, created_at=datetime(2025, 1, d)) for d in range(1, 9)]
    stats = dashboard_stats(orders, today=date(2025, 1, 20))

    assert stats.today_orders == 0
    assert len(stats.recent_orders) == 5
    assert stats.recent_orders[0].created_at == datetime(2025, 1, 8)


def test_dashboard_empty():
    stats = dashboard_stats([], today=date(2025, 1, 3))
    assert (stats.today_orders, stats.pending_delivery, stats.pending_payment) == (0, 0, 0)
    assert stats.recent_orders == []


# =========================================================
# Reports
# =========================================================
def test_report_summary_figures():
    orders = [_o(1000, 300), _o(500, 500), _o(800, 0)]
    expenses = [_e(150, date(2025, 1, 2)), _e(250.5, date(2025, 1, 3))]

    report = report_summary(orders, expenses, customer_count=2)

    assert report.total_revenue == 2300
    assert report.payment_pending == 1500
    assert report.revenue_collected == 800
    assert report.total_expenses == 400.5
    assert report.net_profit == pytest.approx(399.5)
    assert report.order_count == 3
    assert report.customer_count == 2
    assert [o.total_amount for o in report.pending_orders] == [1000, 800]
    assert [e.amount for e in report.latest_expenses] == [250.5, 150]


def test_report_latest_expenses_capped_and_ordered():
    expenses = [_e(d, date(2025, 1, d)) for d in range(1, 13)]
    expenses.append(_e(99, date(2025, 1, 12), created_at=datetime(2025, 1, 12, 18)))

    report = report_summary([], expenses, customer_count=0)

    assert len(report.latest_expenses) == 10
    assert [e.amount for e in report.latest_expenses[:2]] == [99, 12]
    assert report.net_profit == -report.total_expenses


# =========================================================
# Pages
# =========================================================
def test_dashboard_page(unlocked, profile):
    customer = make_customer(profile)
    db.session.add(Order(profile_id=profile.id, customer_id=customer.id,
                         total_amount=1000, advance_amount=250))
    db.session.commit()

    resp = unlocked.get("/dashboard")
    assert resp.status_code == 200
    html = resp.get_data(as_text=True)
    assert "Ravi" in html
    assert "Raj Kumar" in html
    assert "750" in html


def test_reports_page_scoped_to_profile(unlocked, profile):
    other = make_profile(email="other@shop.test", shop_name="Other Shop")
    stranger = make_customer(other, name="Stranger Person")
    db.session.add(Order(profile_id=other.id, customer_id=stranger.id, total_amount=99999))
    db.session.add(Expense(profile_id=profile.id, category="Rent", amount=2000, date=date(2025, 1, 1)))
    db.session.commit()

    resp = unlocked.get("/reports")
    assert resp.status_code == 200
    html = resp.get_data(as_text=True)
    assert "99999" not in html
    assert "Stranger Person" not in html
    assert "2000" in html
