from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from database_init import db
from Form.json_form import form_errors, form_from_json
from Form.plan_form import PlanForm
from models.plan import Plan
from models.user import User
from routes.access import require_admin
from routes.auth import _user_to_dict
from routes.plan import _plan_to_dict
from util.constant import PLAN_INTERVALS, USER_ROLE

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _failed(message, code=400):
    return jsonify({"status": "failed", "message": message}), code


def _valid_tiers(tiers):
    if not isinstance(tiers, list):
        return False
    for tier in tiers:
        if not isinstance(tier, dict):
            return False
        if not isinstance(tier.get("min_servers"), int) or tier["min_servers"] < 1:
            return False
        if not isinstance(tier.get("discount_percent"), (int, float)):
            return False
        if not 0 <= tier["discount_percent"] <= 100:
            return False
    return True


@admin_bp.before_request
@login_required
def check_admin():
    require_admin()


# =============== Users ===============


@admin_bp.route("/users", methods=["GET"])
def list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    return jsonify([_user_to_dict(u) for u in users])


@admin_bp.route("/users/<int:user_id>/role", methods=["PUT"])
def change_role(user_id):
    user = User.query.get_or_404(user_id)
    role = (request.get_json(silent=True) or {}).get("role")
    if role not in USER_ROLE.values():
        return _failed(f"Role must be one of {', '.join(USER_ROLE.values())}")
    # Only a super admin hands out or takes away admin rights
    if (role != USER_ROLE.user.value or user.is_admin) and not current_user.is_super_admin:
        return _failed("Only a super admin can change admin roles", 403)
    if user.id == current_user.id and role != current_user.role:
        return _failed("You cannot change your own role")
    user.role = role
    db.session.commit()
    return jsonify({"status": "success", "user": _user_to_dict(user)})


@admin_bp.route("/users/<int:user_id>/activate", methods=["POST"])
def activate_user(user_id):
    user = User.query.get_or_404(user_id)
    user.is_active = True
    db.session.commit()
    return jsonify({"status": "success", "user": _user_to_dict(user)})


@admin_bp.route("/users/<int:user_id>/deactivate", methods=["POST"])
def deactivate_user(user_id):
    user = User.query.get_or_404(user_id)
    if user.id == current_user.id:
        return _failed("You cannot deactivate yourself")
    if user.is_super_admin and not current_user.is_super_admin:
        return _failed("Only a super admin can deactivate a super admin", 403)
    user.is_active = False
    db.session.commit()
    return jsonify({"status": "success", "user": _user_to_dict(user)})


# =============== Plans ===============


@admin_bp.route("/plans", methods=["GET"])
def list_all_plans():
    plans = Plan.query.order_by(Plan.price_per_server).all()
    return jsonify([_plan_to_dict(p) for p in plans])


@admin_bp.route("/plans", methods=["POST"])
def create_plan():
    data = request.get_json(silent=True) or {}
    form = form_from_json(PlanForm, data)
    if not form.validate():
        return _failed(form_errors(form))
    if Plan.query.filter_by(name=form.name.data).first():
        return _failed(f"Plan {form.name.data} already exists")
    tiers = data.get("discount_tiers") or []
    if not _valid_tiers(tiers):
        return _failed("discount_tiers must be a list of {min_servers, discount_percent}")

    plan = Plan(
        name=form.name.data,
        description=form.description.data,
        price_per_server=form.price_per_server.data,
        interval=form.interval.data,
        features=list(data.get("features") or []),
        discount_tiers=tiers,
        is_active=form.is_active.data if "is_active" in data else True,
        is_popular=form.is_popular.data,
    )
    db.session.add(plan)
    db.session.commit()
    return jsonify(_plan_to_dict(plan)), 201


@admin_bp.route("/plans/<int:plan_id>", methods=["PUT"])
def update_plan(plan_id):
    plan = Plan.query.get_or_404(plan_id)
    data = request.get_json(silent=True) or {}
    if "discount_tiers" in data:
        if not _valid_tiers(data["discount_tiers"]):
            return _failed("discount_tiers must be a list of {min_servers, discount_percent}")
        plan.discount_tiers = data["discount_tiers"]
    if "price_per_server" in data:
        price = data["price_per_server"]
        if not isinstance(price, (int, float)) or price < 0:
            return _failed("price_per_server must be a non-negative number")
        plan.price_per_server = float(price)
    if "features" in data:
        plan.features = list(data["features"] or [])
    if data.get("interval"):
        if data["interval"] not in PLAN_INTERVALS:
            return _failed(f"interval must be one of {', '.join(PLAN_INTERVALS)}")
        plan.interval = data["interval"]
    for field in ("name", "description"):
        if data.get(field):
            setattr(plan, field, data[field])
    for flag in ("is_active", "is_popular"):
        if flag in data:
            setattr(plan, flag, bool(data[flag]))
    db.session.commit()
    return jsonify(_plan_to_dict(plan))


@admin_bp.route("/plans/<int:plan_id>", methods=["DELETE"])
def delete_plan(plan_id):
    plan = Plan.query.get_or_404(plan_id)
    if User.query.filter_by(plan_id=plan.id).first():
        plan.is_active = False
        db.session.commit()
        return jsonify({"status": "success", "message": "Plan in use; deactivated instead"})
    db.session.delete(plan)
    db.session.commit()
    return jsonify({"status": "success"})
