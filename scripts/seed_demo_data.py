"""
Seed the local database with demo stores, users (one per role) and job logs.

Usage:
  python scripts/seed_demo_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (store code for stores, username for users,
store + description for job logs).
"""

from datetime import datetime

from storehub.db import SessionLocal, Base, engine
from storehub.models.models import JobLog, Store, User
from storehub.auth.security import get_password_hash


DEMO_PASSWORD = "password123"

STORES = [
    ("NGT", "Northgate", "12 Northgate Rd"),
    ("RVS", "Riverside", "3 Riverside Walk"),
    ("MKT", "Market Street", "88 Market St"),
    ("STN", "Station Kiosk", "Unit 4, Central Station"),
    ("PKL", "Park Lane", "149 Park Ln"),
]

USERS = [
    # username, name, role, store code
    ("admin", "Alex Admin", "admin", None),
    ("regional", "Riley Regional", "regional", None),
    ("northgate", "Nia Store", "store", "NGT"),
    ("maintenance", "Morgan Maintenance", "maintenance", None),
    ("staff.northgate", "Sam Staff", "staff", "NGT"),
]

JOB_LOGS = [
    # store code, date, time, logged by, description, category, flag
    ("NGT", "2025-04-01", "09:30", "Nia Store", "Coffee machine not heating water properly", "electrical", "normal"),
    ("RVS", "2025-04-02", "14:15", "Riley Regional", "Refrigerator temperature fluctuating", "electrical", "urgent"),
    ("MKT", "2025-03-15", "11:00", "Morgan Maintenance", "Leak in back room sink", "plumbing", "long_standing"),
    ("PKL", "2025-04-03", "10:45", "Alex Admin", "Front door lock not working properly", "building", "urgent"),
    ("NGT", None, None, "Sam Staff", "Loose ceiling tile above the counter", "building", "normal"),
]


def ensure_store(session, code: str, name: str, address: str) -> Store:
    store = session.query(Store).filter(Store.store_code == code).first()
    if store:
        store.name = name
        store.address = address
        return store
    store = Store(store_code=code, name=name, address=address)
    session.add(store)
    session.flush()
    return store


def ensure_user(session, username: str, name: str, role: str, store: Store | None) -> User:
    user = session.query(User).filter(User.username == username).first()
    if user is None:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=get_password_hash(DEMO_PASSWORD),
            is_active=True,
        )
        session.add(user)
    user.name = name
    user.role = role
    user.store_id = store.id if store else None
    session.flush()
    return user


def ensure_job(session, store: Store, log_date, log_time, logged_by, description, category, flag) -> JobLog:
    job = session.query(JobLog).filter(JobLog.store_id == store.id, JobLog.description == description).first()
    if job:
        return job
    now = datetime.utcnow()
    job = JobLog(
        store_id=store.id,
        description=description,
        category=category,
        flag=flag,
        logged_by=logged_by,
        log_date=log_date,
        log_time=log_time,
        attachments=[],
        status="pending",
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    session.flush()
    return job


def main() -> None:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        stores = {code: ensure_store(session, code, name, address) for code, name, address in STORES}
        for username, name, role, code in USERS:
            ensure_user(session, username, name, role, stores.get(code))
        for code, log_date, log_time, logged_by, description, category, flag in JOB_LOGS:
            ensure_job(session, stores[code], log_date, log_time, logged_by, description, category, flag)
        session.commit()
        print(f"Seeded {len(STORES)} stores, {len(USERS)} users, {len(JOB_LOGS)} job logs")
    finally:
        session.close()


if __name__ == "__main__":
    main()
