from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Sequence

from cotiz.domain.contracts import PaymentRecord, PlatformBalance, ReleaseResult
from cotiz.domain.gateway import GatewayError, PaymentsGateway
from cotiz.errors import ConflictError, IntegrationError, NotFoundError
from cotiz.money import money_str, quantize_money
from cotiz.observability import observe_gateway_call


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class LiquidityMetrics:
    total_in_escrow: Decimal
    escrow_count: int
    releasing_next_7_days: Decimal
    releasing_next_30_days: Decimal
    pending_errors: int
    transferred_this_month: Decimal
    commission_this_month: Decimal
    refresh_interval_seconds: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_in_escrow": money_str(self.total_in_escrow),
            "escrow_count": self.escrow_count,
            "releasing_next_7_days": money_str(self.releasing_next_7_days),
            "releasing_next_30_days": money_str(self.releasing_next_30_days),
            "pending_errors": self.pending_errors,
            "transferred_this_month": money_str(self.transferred_this_month),
            "commission_this_month": money_str(self.commission_this_month),
            "refresh_interval_seconds": self.refresh_interval_seconds,
        }


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _releasing_until(payments: Sequence[PaymentRecord], limit: date) -> Decimal:
    return sum(
        (p.amount for p in payments if p.scheduled_delivery_date is not None and p.scheduled_delivery_date <= limit),
        ZERO,
    )


def compute_liquidity_metrics(
    escrow: Sequence[PaymentRecord],
    completed: Sequence[PaymentRecord],
    *,
    failed_count: int = 0,
    now: datetime | None = None,
    refresh_interval_seconds: int = 60,
) -> LiquidityMetrics:
    """Escrow exposure by delivery horizon plus this month's transfers.

    Escrow payments without a scheduled delivery date count toward the total
    but toward neither horizon.
    """
    current = now or datetime.now(timezone.utc)
    today = current.date()
    month_start = start_of_month(current)

    in_escrow = [p for p in escrow if p.status == "in_escrow"]
    this_month = [
        p
        for p in completed
        if p.status == "completed" and p.released_at is not None and p.released_at >= month_start
    ]
    return LiquidityMetrics(
        total_in_escrow=quantize_money(sum((p.amount for p in in_escrow), ZERO)),
        escrow_count=len(in_escrow),
        releasing_next_7_days=quantize_money(_releasing_until(in_escrow, today + timedelta(days=7))),
        releasing_next_30_days=quantize_money(_releasing_until(in_escrow, today + timedelta(days=30))),
        pending_errors=int(failed_count),
        transferred_this_month=quantize_money(sum((p.amount for p in this_month), ZERO)),
        commission_this_month=quantize_money(sum((p.platform_commission or ZERO for p in this_month), ZERO)),
        refresh_interval_seconds=int(refresh_interval_seconds),
    )


class LiquidityService:
    def __init__(self, payments: PaymentsGateway, *, refresh_interval_seconds: int = 60) -> None:
        self.payments = payments
        self.refresh_interval_seconds = int(refresh_interval_seconds)

    def metrics(self, now: datetime | None = None) -> LiquidityMetrics:
        current = now or datetime.now(timezone.utc)
        try:
            escrow = self.payments.list_payments(["in_escrow"])
            completed = self.payments.list_payments(["completed"], released_since=start_of_month(current).date())
            failed = self.payments.list_payments(["failed"])
        except GatewayError as exc:
            observe_gateway_call("list_payments", "failed")
            logger.warning("liquidity_load_failed", extra={"details": str(exc)})
            raise IntegrationError(code="liquidity_load_failed", message_key="liquidity_load_failed", details=str(exc)) from exc
        observe_gateway_call("list_payments", "ok")
        return compute_liquidity_metrics(
            escrow,
            completed,
            failed_count=len(failed),
            now=current,
            refresh_interval_seconds=self.refresh_interval_seconds,
        )

    def platform_balance(self) -> PlatformBalance:
        try:
            balance = self.payments.get_platform_balance()
        except GatewayError as exc:
            observe_gateway_call("get_platform_balance", "failed")
            logger.warning("platform_balance_failed", extra={"details": str(exc)})
            raise IntegrationError(
                code="platform_balance_failed",
                message_key="platform_balance_failed",
                details=str(exc),
            ) from exc
        observe_gateway_call("get_platform_balance", "ok")
        return balance

    def release(self, payment_id: str) -> ReleaseResult:
        try:
            result = self.payments.release_escrow_payment(payment_id)
        except GatewayError as exc:
            observe_gateway_call("release_escrow_payment", "failed")
            if exc.status == 404:
                raise NotFoundError(details=str(exc)) from exc
            if exc.status == 409:
                raise ConflictError(
                    code="payment_not_in_escrow",
                    message_key="payment_not_in_escrow",
                    details=str(exc),
                ) from exc
            logger.warning("escrow_release_failed", extra={"payment_id": payment_id, "details": str(exc)})
            raise IntegrationError(code="escrow_release_failed", message_key="escrow_release_failed", details=str(exc)) from exc
        observe_gateway_call("release_escrow_payment", "ok")
        logger.info("escrow_released", extra={"payment_id": payment_id, "status": result.status})
        return result
