# seeder/seed_user.py
import os
from dotenv import load_dotenv

from models.user import User
from database_init import db
from util.constant import SUBSCRIPTION_STATUS, USER_ROLE

load_dotenv()


def seed_admin_user(app, role=USER_ROLE.admin.value):
    with app.app_context():
        name = os.getenv("ADMIN_NAME", "Admin")
        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        raw_password = os.getenv("ADMIN_PASSWORD")

        if not email or not raw_password:
            print("❌ ADMIN_EMAIL or ADMIN_PASSWORD missing from .env")
            return None

        user = User.query.filter_by(email=email).first()
        if user:
            print(f"⚠️ User {email} already exists, skipping.")
            return user

        user = User(
            name=name,
            email=email,
            role=role,
            is_active=True,
            subscription_status=SUBSCRIPTION_STATUS.active.value,
        )
        user.set_password(raw_password)
        db.session.add(user)
        db.session.commit()
        print(f"✅ Created {role} user: {email}")
        return user
