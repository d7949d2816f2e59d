from flask import Blueprint, current_app, jsonify, session

from cotiz.contexts.finance.liquidity import LiquidityService
from cotiz.infrastructure.factory import build_payments_gateway
from cotiz.policies import FINANCE_ROLES, require_roles
from cotiz.ui_strings import success_message


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _liquidity() -> LiquidityService:
    return LiquidityService(
        build_payments_gateway(),
        refresh_interval_seconds=int(current_app.config.get("LIQUIDITY_REFRESH_SECONDS", 60)),
    )


@admin_bp.route("/liquidez", methods=["GET"])
def liquidity_metrics():
    require_roles(*FINANCE_ROLES)
    return jsonify(_liquidity().metrics().to_dict())


@admin_bp.route("/saldo-plataforma", methods=["GET"])
def platform_balance():
    require_roles(*FINANCE_ROLES)
    return jsonify(_liquidity().platform_balance().to_dict())


@admin_bp.route("/pagamentos/<payment_id>/liberar", methods=["POST"])
def release_payment(payment_id: str):
    require_roles(*FINANCE_ROLES)
    result = _liquidity().release(payment_id)
    current_app.logger.info(
        "escrow_release_requested",
        extra={"payment_id": payment_id, "actor": session.get("user_email")},
    )
    return jsonify({**result.to_dict(), "message": success_message("escrow_released")})
