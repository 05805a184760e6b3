# tailorbook/services/reports.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from tailorbook.models import CLOSED_STATUSES, Customer, Expense, Order

RECENT_ORDERS_LIMIT = 5
LATEST_EXPENSES_LIMIT = 10


def greeting(now: datetime | None = None) -> str:
    hour = (now or datetime.now()).hour
    if hour < 12:
        return "Good Morning"
    if hour < 17:
        return "Good Afternoon"
    return "Good Evening"


# =========================================================
# Dashboard
# =========================================================
@dataclass
class DashboardStats:
    today_orders: int = 0
    pending_delivery: int = 0
    pending_payment: float = 0.0
    recent_orders: list = field(default_factory=list)


def dashboard_stats(orders: list[Order], today: date | None = None) -> DashboardStats:
    today = today or datetime.utcnow().date()
    ordered = sorted(orders, key=lambda o: o.created_at, reverse=True)

    return DashboardStats(
        today_orders=sum(1 for o in ordered if o.created_at.date() == today),
        pending_delivery=sum(1 for o in ordered if o.status not in CLOSED_STATUSES),
        pending_payment=sum(o.balance_due for o in ordered),
        recent_orders=ordered[:RECENT_ORDERS_LIMIT],
    )


def load_dashboard(profile_id: int) -> DashboardStats:
    return dashboard_stats(Order.query.filter_by(profile_id=profile_id).all())


# =========================================================
# Reports
# =========================================================
@dataclass
class ReportSummary:
    total_revenue: float = 0.0
    payment_pending: float = 0.0
    total_expenses: float = 0.0
    order_count: int = 0
    customer_count: int = 0
    pending_orders: list = field(default_factory=list)
    latest_expenses: list = field(default_factory=list)

    @property
    def revenue_collected(self) -> float:
        return self.total_revenue - self.payment_pending

    @property
    def net_profit(self) -> float:
        return self.revenue_collected - self.total_expenses


def report_summary(orders: list[Order], expenses: list[Expense], customer_count: int) -> ReportSummary:
    ordered = sorted(orders, key=lambda o: o.created_at, reverse=True)
    latest = sorted(expenses, key=lambda e: (e.date, e.created_at), reverse=True)

    return ReportSummary(
        total_revenue=sum(float(o.total_amount or 0) for o in ordered),
        payment_pending=sum(o.balance_due for o in ordered),
        total_expenses=sum(float(e.amount or 0) for e in expenses),
        order_count=len(ordered),
        customer_count=customer_count,
        pending_orders=[o for o in ordered if o.balance_due > 0],
        latest_expenses=latest[:LATEST_EXPENSES_LIMIT],
    )


def load_report(profile_id: int) -> ReportSummary:
    return report_summary(
        Order.query.filter_by(profile_id=profile_id).all(),
        Expense.query.filter_by(profile_id=profile_id).all(),
        Customer.query.filter_by(profile_id=profile_id).count(),
    )
