# seeder/seed.py
from database_init import db
from seeder.seed_plans import add_discount_tiers, seed_plans
from seeder.seed_user import seed_admin_user


def seed_all(app):
    seed_admin_user(app)
    seed_plans(app)
    add_discount_tiers(app)


if __name__ == "__main__":
    from app import create_app

    app = create_app()
    with app.app_context():
        db.create_all()
    seed_all(app)
