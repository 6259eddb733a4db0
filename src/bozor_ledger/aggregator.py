"""Dashboard and period aggregates computed from the current ledger contents.

Nothing here is cached: every call takes a fresh snapshot of products and sales
under the store's read lock and reduces over it.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from . import log
from .constants import TRAILING_WINDOW_DAYS, WEEKDAY_LABELS
from .data_manager import ProductRow, SaleRow
from .domain import Clock, local_day, require_date_range, round_margin, round_money, system_clock
from .products import ProductLedger
from .sales import SaleLedger


ZERO = Decimal("0")


@dataclass(frozen=True)
class DaySummary:
    """Totals over the sales of one calendar day."""

    date: date
    total_sales: Decimal
    total_profit: Decimal
    total_cost: Decimal
    sale_count: int


@dataclass(frozen=True)
class DashboardStats:
    daily_profit: Decimal
    daily_sales: Decimal
    daily_cost: Decimal
    daily_margin: Decimal
    weekly_profit: Decimal
    product_count: int


@dataclass(frozen=True)
class WeeklyPoint:
    day: str
    date: date
    sales: Decimal
    profit: Decimal


@dataclass(frozen=True)
class PeriodSummary:
    """Totals over an inclusive date window."""

    start: date
    end: date
    total_sales: Decimal
    total_profit: Decimal
    total_cost: Decimal
    margin: Decimal
    sale_count: int
    average_sale: Decimal


@dataclass(frozen=True)
class ProductPerformance:
    product_id: str
    name: str
    quantity_sold: Decimal
    revenue: Decimal
    profit: Decimal


def margin_percent(profit: Decimal, sales: Decimal) -> Decimal:
    """``profit / sales * 100`` at one decimal, or ``0.0`` when nothing sold."""

    if sales == ZERO:
        return round_margin(ZERO)
    return round_margin(profit / sales * Decimal("100"))


def _sum_sales(sales: Iterable[SaleRow]) -> Tuple[Decimal, Decimal, int]:
    total_sales = ZERO
    total_profit = ZERO
    count = 0
    for sale in sales:
        total_sales += sale.total_amount
        total_profit += sale.profit
        count += 1
    return round_money(total_sales), round_money(total_profit), count


class Aggregator:
    """Stateless reporting over the product and sale ledgers."""

    def __init__(self, products: ProductLedger, sales: SaleLedger, *, clock: Clock = system_clock) -> None:
        self._products = products
        self._sales = sales
        self._clock = clock

    def _today(self) -> date:
        return local_day(self._clock())

    def trailing_window(self) -> List[date]:
        """The last seven calendar days ending today, oldest first."""
        today = self._today()
        return [today - timedelta(days=offset) for offset in range(TRAILING_WINDOW_DAYS - 1, -1, -1)]

    def _snapshot(self) -> Tuple[List[ProductRow], List[SaleRow]]:
        with self._products.store.read():
            return self._products.list(), self._sales.list_sales()

    def summarize_day(self, day: date) -> DaySummary:
        total_sales, total_profit, count = _sum_sales(self._sales.list_sales_by_date(day))
        log.debug("Summarized %d sales for %s", count, day)
        return DaySummary(
            date=day,
            total_sales=total_sales,
            total_profit=total_profit,
            total_cost=round_money(total_sales - total_profit),
            sale_count=count,
        )

    def dashboard_stats(self) -> DashboardStats:
        """Today's figures, trailing-week profit and the product count.

        ``daily_cost`` is ``daily_sales - daily_profit``; ``daily_margin`` is
        the profit share of sales in percent (``0.0`` with no sales).
        """
        products, sales = self._snapshot()
        window = self.trailing_window()
        today = window[-1]

        daily_sales, daily_profit, _ = _sum_sales(s for s in sales if local_day(s.sale_date) == today)
        _, weekly_profit, _ = _sum_sales(s for s in sales if window[0] <= local_day(s.sale_date) <= today)

        return DashboardStats(
            daily_profit=daily_profit,
            daily_sales=daily_sales,
            daily_cost=round_money(daily_sales - daily_profit),
            daily_margin=margin_percent(daily_profit, daily_sales),
            weekly_profit=weekly_profit,
            product_count=len(products),
        )

    def weekly_series(self) -> List[WeeklyPoint]:
        """Seven points, oldest day first; days without sales report zero."""
        _, sales = self._snapshot()
        window = self.trailing_window()
        by_day: Dict[date, List[SaleRow]] = defaultdict(list)
        for sale in sales:
            by_day[local_day(sale.sale_date)].append(sale)

        series = []
        for day in window:
            day_sales, day_profit, _ = _sum_sales(by_day.get(day, []))
            series.append(WeeklyPoint(day=WEEKDAY_LABELS[day.weekday()], date=day, sales=day_sales, profit=day_profit))
        return series

    def summarize_range(self, start: date, end: date) -> PeriodSummary:
        sales = self._sales.list_sales_by_date_range(start, end)
        total_sales, total_profit, count = _sum_sales(sales)
        average = round_money(total_sales / count) if count else round_money(ZERO)
        return PeriodSummary(
            start=start,
            end=end,
            total_sales=total_sales,
            total_profit=total_profit,
            total_cost=round_money(total_sales - total_profit),
            margin=margin_percent(total_profit, total_sales),
            sale_count=count,
            average_sale=average,
        )

    def product_performance(self, start: date, end: date) -> List[ProductPerformance]:
        """Per-product quantity, revenue and profit, best revenue first.

        Products without sales in the window are left out.
        """
        require_date_range(start, end)
        products, sales = self._snapshot()
        names = {product.product_id: product.name for product in products}
        quantity: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        revenue: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        profit: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for sale in sales:
            if not start <= local_day(sale.sale_date) <= end:
                continue
            quantity[sale.product_id] += sale.quantity
            revenue[sale.product_id] += sale.total_amount
            profit[sale.product_id] += sale.profit

        ranking = [
            ProductPerformance(
                product_id=product_id,
                name=names.get(product_id, product_id),
                quantity_sold=quantity[product_id],
                revenue=round_money(revenue[product_id]),
                profit=round_money(profit[product_id]),
            )
            for product_id in revenue
        ]
        return sorted(ranking, key=lambda item: item.revenue, reverse=True)

    def inventory_value(self) -> Decimal:
        """Stock on hand valued at purchase price."""
        total = sum((product.stock * product.purchase_price for product in self._products.list()), ZERO)
        return round_money(total)
