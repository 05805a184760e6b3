import os
import sys

from tailorbook import create_app
from tailorbook.config.shop import DEFAULT_PIN, REGISTER_SHOP_NAME
from tailorbook.extensions import db
from tailorbook.models import Profile
from tailorbook.utils.passwords import hash_password, hash_pin, is_valid_pin, validate_password

EMAIL = (os.environ.get("SHOP_EMAIL") or "").strip().lower()
PASSWORD = os.environ.get("SHOP_PASSWORD") or ""
SHOP_NAME = os.environ.get("SHOP_NAME") or REGISTER_SHOP_NAME
PIN = (os.environ.get("SHOP_PIN") or "").strip() or DEFAULT_PIN

if not EMAIL or not PASSWORD:
    sys.exit("Set SHOP_EMAIL and SHOP_PASSWORD.")

if not is_valid_pin(PIN):
    sys.exit("SHOP_PIN must be exactly 4 digits.")

ok, msg = validate_password(PASSWORD)
if not ok:
    sys.exit(msg)

app = create_app()

with app.app_context():
    profile = Profile.query.filter(db.func.lower(Profile.email) == EMAIL).first()

    if profile:
        print("🔁 Updating existing shop:", EMAIL)
    else:
        print("🧵 Creating new shop:", EMAIL)
        profile = Profile(email=EMAIL)
        db.session.add(profile)

    profile.password_hash = hash_password(PASSWORD)
    profile.shop_name = SHOP_NAME
    profile.pin_hash = hash_pin(PIN)
    db.session.commit()

    print("✅ Shop ready:", EMAIL, "/", SHOP_NAME)
