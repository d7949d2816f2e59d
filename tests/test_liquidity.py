import unittest
from datetime import date, datetime, timezone
from decimal import Decimal

from cotiz.contexts.finance.liquidity import LiquidityService, compute_liquidity_metrics, start_of_month
from cotiz.domain.contracts import PaymentRecord
from cotiz.domain.gateway import GatewayError
from cotiz.errors import ConflictError, IntegrationError, NotFoundError


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _payment(pid, amount, status, *, delivery=None, released_at=None, commission=None):
    return PaymentRecord(
        id=pid,
        amount=Decimal(amount),
        status=status,
        scheduled_delivery_date=delivery,
        released_at=released_at,
        platform_commission=Decimal(commission) if commission else None,
    )


class _FakePayments:
    def __init__(self, payments=(), *, release_error=None, list_error=None):
        self.payments = list(payments)
        self.release_error = release_error
        self.list_error = list_error

    def list_payments(self, statuses, *, released_since=None):
        if self.list_error is not None:
            raise self.list_error
        return [p for p in self.payments if p.status in statuses]

    def get_platform_balance(self):
        raise GatewayError("balance HTTP 503")

    def release_escrow_payment(self, payment_id):
        raise self.release_error


class LiquidityMetricsTest(unittest.TestCase):
    def test_horizons_and_month_totals(self) -> None:
        escrow = [
            _payment("p1", "100.00", "in_escrow", delivery=date(2026, 3, 20)),
            _payment("p2", "200.00", "in_escrow", delivery=date(2026, 4, 10)),
            _payment("p3", "300.00", "in_escrow", delivery=date(2026, 6, 1)),
            _payment("p4", "50.00", "in_escrow"),
        ]
        completed = [
            _payment("c1", "1000.00", "completed", released_at=datetime(2026, 3, 2, tzinfo=timezone.utc), commission="50.00"),
            _payment("c2", "999.00", "completed", released_at=datetime(2026, 2, 27, tzinfo=timezone.utc), commission="49.95"),
        ]
        metrics = compute_liquidity_metrics(escrow, completed, failed_count=2, now=NOW)

        self.assertEqual(metrics.total_in_escrow, Decimal("650.00"))
        self.assertEqual(metrics.escrow_count, 4)
        self.assertEqual(metrics.releasing_next_7_days, Decimal("100.00"))
        self.assertEqual(metrics.releasing_next_30_days, Decimal("300.00"))
        self.assertEqual(metrics.transferred_this_month, Decimal("1000.00"))
        self.assertEqual(metrics.commission_this_month, Decimal("50.00"))
        self.assertEqual(metrics.pending_errors, 2)
        self.assertEqual(metrics.to_dict()["total_in_escrow"], "650.00")

    def test_start_of_month(self) -> None:
        self.assertEqual(start_of_month(NOW), datetime(2026, 3, 1, tzinfo=timezone.utc))


class LiquidityServiceTest(unittest.TestCase):
    def test_metrics_counts_failed_payments(self) -> None:
        service = LiquidityService(
            _FakePayments([_payment("f1", "10", "failed"), _payment("e1", "20", "in_escrow")]),
            refresh_interval_seconds=30,
        )
        metrics = service.metrics(now=NOW)
        self.assertEqual(metrics.pending_errors, 1)
        self.assertEqual(metrics.refresh_interval_seconds, 30)

    def test_load_failure(self) -> None:
        service = LiquidityService(_FakePayments(list_error=GatewayError("HTTP 500")))
        with self.assertRaises(IntegrationError) as ctx:
            service.metrics(now=NOW)
        self.assertEqual(ctx.exception.code, "liquidity_load_failed")
        with self.assertRaises(IntegrationError) as ctx:
            service.platform_balance()
        self.assertEqual(ctx.exception.code, "platform_balance_failed")

    def test_release_error_mapping(self) -> None:
        cases = [
            (GatewayError("x", status=404), NotFoundError),
            (GatewayError("x", status=409), ConflictError),
            (GatewayError("x", status=500), IntegrationError),
        ]
        for error, expected in cases:
            with self.subTest(status=error.status):
                with self.assertRaises(expected):
                    LiquidityService(_FakePayments(release_error=error)).release("p1")


if __name__ == "__main__":
    unittest.main()
