from flask import Blueprint, jsonify, request

from models.plan import Plan
from util.helpers import isoformat

plan_bp = Blueprint("plan", __name__, url_prefix="/api/plans")


def _plan_to_dict(plan: Plan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price_per_server": plan.price_per_server,
        "interval": plan.interval,
        "features": plan.features or [],
        "discount_tiers": plan.discount_tiers or [],
        "is_active": plan.is_active,
        "is_popular": plan.is_popular,
        "created_at": isoformat(plan.created_at),
    }


@plan_bp.route("", methods=["GET"])
def list_plans():
    plans = Plan.query.filter_by(is_active=True).order_by(Plan.price_per_server).all()
    return jsonify([_plan_to_dict(p) for p in plans])


@plan_bp.route("/<int:plan_id>/price", methods=["GET"])
def price(plan_id):
    """Quote for ``?servers=N`` with the plan's best discount tier applied."""
    plan = Plan.query.get_or_404(plan_id)
    servers = request.args.get("servers", default=1, type=int)
    if servers < 1:
        return jsonify({"status": "failed", "message": "servers must be at least 1"}), 400
    quote = plan.calculate_price(servers)
    return jsonify({"plan_id": plan.id, **quote.to_dict()})
