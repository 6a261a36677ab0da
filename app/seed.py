import uuid

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from app.db.session import SessionLocal
from app.models.user import User
from app.models.motorcycle import Motorcycle, AVAILABLE


def ensure_user(db: Session, email: str, role: str, name: str, phone: str = "", driver_license_url: str | None = None):
    u = db.query(User).filter(User.email == email).first()
    if u:
        return u
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name,
        phone=phone,
        role=role,
        driver_license_url=driver_license_url,
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def ensure_motorcycle(db: Session, name: str, daily_rate: int):
    m = db.query(Motorcycle).filter(Motorcycle.name == name).first()
    if m:
        return m
    m = Motorcycle(id=str(uuid.uuid4()), name=name, daily_rate=daily_rate, availability=AVAILABLE)
    db.add(m)
    db.commit()
    return m


FLEET = [
    ("Honda Click 125i", 500),
    ("Yamaha NMAX 155", 800),
    ("Honda ADV 160", 900),
    ("Yamaha Aerox 155", 850),
    ("Suzuki Raider R150", 700),
]


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except ProgrammingError:
            db.rollback()
            print("[seed] users table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_user(db, "admin@motorent.ph", "admin", "Admin")
        ensure_user(db, "renter@motorent.ph", "customer", "Demo Renter", phone="+639170000000",
                    driver_license_url="https://files.motorent.ph/licenses/demo-renter.jpg")

        created = 0
        for name, rate in FLEET:
            before = db.query(Motorcycle).filter(Motorcycle.name == name).first()
            ensure_motorcycle(db, name, rate)
            if not before:
                created += 1
        print(f"[seed] users ready, {created} motorcycles added")
    finally:
        db.close()


if __name__ == "__main__":
    run()
