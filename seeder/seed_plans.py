# seeder/seed_plans.py
import json
import os

from database_init import db
from models.plan import Plan

DATA_FILE = os.path.abspath(os.path.join(os.path.dirname(__file__), "data", "plans.json"))


def load_plan_data():
    with open(DATA_FILE, "r", encoding="utf-8") as f:
        return json.load(f)


def seed_plans(app, with_discounts=False):
    """
    Seed plans from ./data/plans.json.

    New plans get no tiers unless *with_discounts*; with it, the seed tiers
    are also written over those of plans that already exist.
    """
    plans = load_plan_data()
    with app.app_context():
        added = 0
        for data in plans:
            tiers = data["discount_tiers"] if with_discounts else []
            plan = Plan.query.filter_by(name=data["name"]).first()
            if plan:
                if with_discounts:
                    plan.discount_tiers = tiers
                continue
            plan = Plan(
                name=data["name"],
                description=data["description"],
                price_per_server=data["price_per_server"],
                interval=data["interval"],
                features=data["features"],
                discount_tiers=tiers,
                is_active=data["is_active"],
                is_popular=data["is_popular"],
            )
            db.session.add(plan)
            added += 1
        db.session.commit()

        if added:
            print(f"✅ Added {added} plans.")
        else:
            print("⚠️ No new plans to add (all exist already).")
        if with_discounts:
            for data in plans:
                tiers = ", ".join(
                    f"{t['min_servers']}+: {t['discount_percent']}%" for t in data["discount_tiers"]
                )
                print(f"   {data['name']}: R$ {data['price_per_server']:.2f}/server ({tiers})")
        return added


def add_discount_tiers(app):
    """Give every plan without tiers the tiers of its seed entry."""
    tiers_by_name = {p["name"]: p["discount_tiers"] for p in load_plan_data()}
    default_tiers = tiers_by_name.get("Starter", [])
    with app.app_context():
        updated = []
        for plan in Plan.query.all():
            if plan.discount_tiers:
                continue
            plan.discount_tiers = tiers_by_name.get(plan.name, default_tiers)
            updated.append(plan.name)
        db.session.commit()
        if updated:
            print(f"✅ Added discount tiers to: {', '.join(updated)}")
        else:
            print("⚠️ Every plan already has discount tiers.")
        return updated


def update_plans(app):
    """Refresh price, description and features from the seed file; tiers stay."""
    with app.app_context():
        updated = []
        for data in load_plan_data():
            plan = Plan.query.filter_by(name=data["name"]).first()
            if not plan:
                continue
            plan.description = data["description"]
            plan.price_per_server = data["price_per_server"]
            plan.interval = data["interval"]
            plan.features = data["features"]
            plan.is_popular = data["is_popular"]
            updated.append(plan.name)
        db.session.commit()
        print(f"✅ Updated {len(updated)} plans.")
        return updated
