from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from database_init import db
from Form.auth_form import LoginForm, RegisterForm
from Form.json_form import form_errors, form_from_json
from models.user import User
from util.constant import USER_ROLE
from util.helpers import isoformat

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
        "cpf": user.cpf,
        "subscription_status": user.subscription_status,
        "plan_id": user.plan_id,
        "subscription_start": isoformat(user.subscription_start),
        "subscription_end": isoformat(user.subscription_end),
        "created_at": isoformat(user.created_at),
    }


@auth_bp.route("/register", methods=["POST"])
def register():
    form = form_from_json(RegisterForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"status": "failed", "message": form_errors(form)}), 400

    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        return jsonify({"status": "failed", "message": "Email already registered"}), 400

    user = User(
        name=form.name.data.strip(),
        email=email,
        cpf=form.cpf.data or None,
        role=USER_ROLE.user.value,
    )
    user.set_password(form.password.data)
    db.session.add(user)
    db.session.commit()
    login_user(user)
    return jsonify({"status": "success", "user": _user_to_dict(user)}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    form = form_from_json(LoginForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"status": "failed", "message": form_errors(form)}), 400

    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if not user or not user.check_password(form.password.data):
        return jsonify({"status": "failed", "message": "Invalid email or password"}), 401
    if not user.is_active:
        return jsonify({"status": "failed", "message": "Account is disabled"}), 403

    login_user(user, remember=form.remember_me.data)
    return jsonify({"status": "success", "user": _user_to_dict(user)})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"status": "success"})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(_user_to_dict(current_user))
