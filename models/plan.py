from datetime import datetime

from database_init import db


class Plan(db.Model):
    __tablename__ = "plan"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_per_server = db.Column(db.Float, nullable=False, default=0)
    interval = db.Column(db.String(20), default="monthly")
    features = db.Column(db.JSON, default=list)
    # [{"min_servers": 5, "discount_percent": 10}, ...]
    discount_tiers = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, default=True)
    is_popular = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def calculate_price(self, server_count):
        from service.pricing_service import calculate_price

        return calculate_price(self.price_per_server, server_count, self.discount_tiers)

    def __repr__(self):
        return f"<Plan {self.name} {self.price_per_server}>"
