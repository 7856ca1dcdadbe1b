"""
Reporting helpers for the back-office pages.

Two kinds of functions live here: pure reductions over collections that the
caller already loaded (orders, users, products), and thin wrappers that ask
the database to do the counting, summing and date truncation.
"""

from collections import namedtuple
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, literal_column

from database import db, utcnow
from models.order import Order, OrderItem, OrderStatus, status_display
from models.product import Product
from models.user import User

ZERO = Decimal("0")


def safe_divide(numerator, denominator):
    """``numerator / denominator``, or 0 when there is nothing to divide by."""
    if not denominator:
        return 0
    return numerator / denominator


def _money(value):
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ---------- ORDER METRICS ----------

@dataclass
class OrderMetrics:
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal


def order_metrics(orders):
    count = 0
    revenue = ZERO
    for order in orders:
        count += 1
        revenue += _money(order.total)
    return OrderMetrics(
        total_orders=count,
        total_revenue=revenue,
        average_order_value=safe_divide(revenue, count) or ZERO,
    )


@dataclass
class StatusCount:
    status: str
    count: int
    percentage: float

    @property
    def display(self):
        return status_display(self.status)


def count_by_status(orders):
    counts = {}
    for order in orders:
        counts[order.status] = counts.get(order.status, 0) + 1
    return counts


def status_breakdown(counts, total=None):
    """
    Turn a ``{status: count}`` mapping into ``StatusCount`` rows.

    Known statuses come first in lifecycle order, anything else after in the
    order it was seen. Percentages are rounded to one decimal place.
    """
    if total is None:
        total = sum(counts.values())

    ordered = [s.value for s in OrderStatus if s.value in counts]
    ordered += [s for s in counts if s not in ordered]

    return [
        StatusCount(
            status=status,
            count=counts[status],
            percentage=round(safe_divide(counts[status] * 100, total), 1),
        )
        for status in ordered
        if counts[status]
    ]


def status_counts_from_db():
    rows = db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    return {status: count for status, count in rows}


# ---------- REVENUE BY PERIOD ----------

PeriodSpec = namedtuple("PeriodSpec", ["name", "span", "title"])

PERIODS = {
    "week": PeriodSpec("week", 12, "Weekly Sales"),
    "month": PeriodSpec("month", 12, "Monthly Sales"),
    "year": PeriodSpec("year", 5, "Yearly Sales"),
}
DEFAULT_PERIOD = "month"


def resolve_period(name):
    return PERIODS.get(name or DEFAULT_PERIOD, PERIODS[DEFAULT_PERIOD])


@dataclass
class RevenueBucket:
    period_start: date
    revenue: Decimal


def _months_back(moment, months):
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # clamp e.g. 31 March -> 28/29 February
    for day in (moment.day, 30, 29, 28):
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    raise ValueError(f"cannot step {months} months back from {moment!r}")


def period_cutoff(period, now=None):
    """Start of the trailing window for ``period`` (a ``PeriodSpec``)."""
    now = now or utcnow()
    if period.name == "week":
        return now - timedelta(weeks=period.span)
    if period.name == "year":
        return _months_back(now, 12 * period.span)
    return _months_back(now, period.span)


# literal units so GROUP BY matches the selected expression
_DATE_TRUNC_UNITS = {
    "week": literal_column("'week'"),
    "month": literal_column("'month'"),
    "year": literal_column("'year'"),
}


def _truncate(unit, column):
    """Database-side truncation of ``column`` to the start of ``unit``."""
    if unit not in PERIODS:
        raise ValueError(f"unknown period {unit!r}")

    if db.engine.dialect.name == "sqlite":
        if unit == "week":
            # Monday on or before the date
            return func.date(column, literal_column("'-6 days'"), literal_column("'weekday 1'"))
        if unit == "year":
            return func.strftime(literal_column("'%Y-01-01'"), column)
        return func.strftime(literal_column("'%Y-%m-01'"), column)
    return func.date_trunc(_DATE_TRUNC_UNITS[unit], column)


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def revenue_by_period(period_name=None, now=None):
    """
    Revenue per week, month or year over the trailing window, newest first.

    The grouping runs in the database; unknown period names fall back to
    monthly buckets.
    """
    period = resolve_period(period_name)
    bucket = _truncate(period.name, Order.created_at).label("period")
    rows = (
        db.session.query(bucket, func.sum(Order.total).label("revenue"))
        .filter(Order.created_at >= period_cutoff(period, now))
        .group_by(bucket)
        .order_by(bucket.desc())
        .all()
    )
    return [RevenueBucket(_as_date(row.period), _money(row.revenue)) for row in rows]


def chart_points(buckets):
    """Oldest-first chart rows with each bar's height as a share of the best period."""
    peak = max((b.revenue for b in buckets), default=ZERO)
    return [
        {
            "period_start": b.period_start,
            "revenue": b.revenue,
            "height": round(float(safe_divide(b.revenue * 100, peak)), 1),
        }
        for b in reversed(buckets)
    ]


# ---------- TOP PRODUCTS ----------

@dataclass
class TopProduct:
    product_id: int
    units_sold: int
    product: Optional[Product] = None

    @property
    def name(self):
        return self.product.name if self.product else "Unknown Product"

    @property
    def price(self):
        return _money(self.product.price) if self.product else ZERO


def rank_products(rows, limit=5):
    """
    Sum quantities per product id from ``(product_id, quantity)`` rows and
    return the ``limit`` best sellers as ``(product_id, units)`` pairs.

    Ties keep the order in which products first appeared.
    """
    totals = {}
    for product_id, quantity in rows:
        totals[product_id] = totals.get(product_id, 0) + (quantity or 0)
    ranked = sorted(totals.items(), key=lambda pair: pair[1], reverse=True)
    return ranked[:max(limit, 0)]


def top_products(limit=5):
    rows = (
        db.session.query(OrderItem.product_id, func.sum(OrderItem.quantity))
        .group_by(OrderItem.product_id)
        .order_by(func.min(OrderItem.id))
        .all()
    )
    return [
        TopProduct(product_id, int(units), db.session.get(Product, product_id))
        for product_id, units in rank_products(rows, limit)
    ]


# ---------- DASHBOARD / ANALYTICS ----------

def total_revenue_from_db():
    return _money(db.session.query(func.coalesce(func.sum(Order.total), 0)).scalar())


def dashboard_summary():
    return {
        "total_orders": db.session.query(func.count(Order.id)).scalar(),
        "total_revenue": total_revenue_from_db(),
        "total_customers": db.session.query(func.count(User.id)).scalar(),
        "pending_orders": Order.query.filter_by(status=OrderStatus.PENDING.value).count(),
    }


def analytics_summary(low_stock_threshold=10):
    total_orders = db.session.query(func.count(Order.id)).scalar()
    total_customers = db.session.query(func.count(User.id)).scalar()
    revenue = total_revenue_from_db()

    return {
        "total_revenue": revenue,
        "total_orders": total_orders,
        "total_customers": total_customers,
        "total_products": db.session.query(func.count(Product.id)).scalar(),
        "conversion_rate": round(float(safe_divide(total_orders * 100, total_customers)), 1),
        "average_order_value": safe_divide(revenue, total_orders) or ZERO,
        "customer_lifetime_value": safe_divide(revenue, total_customers) or ZERO,
        "status_breakdown": status_breakdown(status_counts_from_db(), total_orders),
        "low_stock": Product.query.filter(
            Product.stock > 0, Product.stock <= low_stock_threshold
        ).count(),
        "out_of_stock": Product.query.filter(Product.stock <= 0).count(),
    }


def product_stats(products, low_stock_threshold=10):
    products = list(products)
    total_value = sum((_money(p.price) for p in products), ZERO)
    return {
        "total_products": len(products),
        "total_value": total_value,
        "average_price": safe_divide(total_value, len(products)) or ZERO,
        "low_stock": sum(1 for p in products if (p.stock or 0) <= low_stock_threshold),
    }


# ---------- CUSTOMERS ----------

@dataclass
class CustomerStats:
    user: User
    total_orders: int = 0
    total_spent: Decimal = ZERO
    last_order_date: Optional[datetime] = None


def customer_stats(users, orders):
    """
    Per-user order count, spend and latest order date in one pass over
    ``orders``. Users keep their input order; orders of unknown users are
    ignored.
    """
    stats = {}
    for user in users:
        stats[user.id] = CustomerStats(user=user)

    for order in orders:
        entry = stats.get(order.user_id)
        if entry is None:
            continue
        entry.total_orders += 1
        entry.total_spent += _money(order.total)
        if entry.last_order_date is None or order.created_at > entry.last_order_date:
            entry.last_order_date = order.created_at

    return list(stats.values())


@dataclass
class CustomerSummary:
    total_customers: int
    active_customers: int
    total_revenue: Decimal
    average_spend: Decimal
    top_customers: list = field(default_factory=list)
    recent_signups: list = field(default_factory=list)


def summarize_customers(stats, top=5, recent=5):
    stats = list(stats)
    revenue = sum((s.total_spent for s in stats), ZERO)

    spenders = [s for s in stats if s.total_spent > 0]
    spenders.sort(key=lambda s: s.total_spent, reverse=True)

    newest = sorted(stats, key=lambda s: s.user.created_at, reverse=True)

    return CustomerSummary(
        total_customers=len(stats),
        active_customers=sum(1 for s in stats if s.total_orders > 0),
        total_revenue=revenue,
        average_spend=safe_divide(revenue, len(stats)) or ZERO,
        top_customers=spenders[:top],
        recent_signups=newest[:recent],
    )


CUSTOMER_SEGMENTS = ("all", "with_orders", "without_orders", "recent")
RECENT_SIGNUP_DAYS = 30


def filter_customers(stats, query=None, segment="all", now=None):
    query = (query or "").strip().lower()
    now = now or utcnow()
    recent_since = now - timedelta(days=RECENT_SIGNUP_DAYS)

    result = []
    for s in stats:
        if query:
            haystack = f"{s.user.name or ''} {s.user.email}".lower()
            if query not in haystack:
                continue
        if segment == "with_orders" and s.total_orders == 0:
            continue
        if segment == "without_orders" and s.total_orders > 0:
            continue
        if segment == "recent" and s.user.created_at < recent_since:
            continue
        result.append(s)
    return result
