from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from database_init import db
from util.constant import SUBSCRIPTION_STATUS, USER_ROLE


class User(UserMixin, db.Model):
    __tablename__ = "user"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), default=USER_ROLE.user.value, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    cpf = db.Column(db.String(20), nullable=True)

    subscription_status = db.Column(
        db.String(20), default=SUBSCRIPTION_STATUS.trial.value
    )
    plan_id = db.Column(db.Integer, db.ForeignKey("plan.id"), nullable=True)
    subscription_start = db.Column(db.DateTime, nullable=True)
    subscription_end = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    plan = db.relationship("Plan")
    servers = db.relationship("Server", back_populates="user", lazy=True)

    def set_password(self, raw_password):
        self.password = generate_password_hash(raw_password)

    def check_password(self, raw_password):
        return check_password_hash(self.password, raw_password)

    @property
    def is_admin(self):
        return self.role in (USER_ROLE.admin.value, USER_ROLE.super_admin.value)

    @property
    def is_super_admin(self):
        return self.role == USER_ROLE.super_admin.value

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
