"""
Seed script to create verified demo users, one per role.
Run this once to populate the users collection:

    python -m grievance_portal.seed
"""

import uuid
from typing import Optional

from . import config, store
from .clock import Clock, SystemClock
from .models import Role, UserRecord
from .protocols import UserStore
from .security import hash_password

USERS = [
    {
        "name": "Test Student",
        "email": f"student1@{config.STUDENT_EMAIL_DOMAIN}",
        "password": "student123",
        "role": Role.STUDENT,
        "department": "CSE",
    },
    {
        "name": "CSE Department Admin",
        "email": f"cse.admin@{config.STAFF_EMAIL_DOMAIN}",
        "password": "deptadmin123",
        "role": Role.DEPARTMENT_ADMIN,
        "department": "CSE",
    },
    {
        "name": "CSE Head of Department",
        "email": f"cse.hod@{config.STAFF_EMAIL_DOMAIN}",
        "password": "hod12345",
        "role": Role.HOD,
        "department": "CSE",
    },
    {
        "name": "Institute Director",
        "email": f"director@{config.STAFF_EMAIL_DOMAIN}",
        "password": "director123",
        "role": Role.DIRECTOR,
        "department": None,
    },
]

def seed(users: UserStore, clock: Optional[Clock] = None):
    clock = clock or SystemClock()
    created = 0
    skipped = 0
    for user_data in USERS:
        if users.find_by_email(user_data["email"]):
            print(f"  SKIP  {user_data['email']} (already exists)")
            skipped += 1
            continue

        users.insert(UserRecord(
            id=str(uuid.uuid4()),
            name=user_data["name"],
            email=user_data["email"],
            username=user_data["email"].split("@")[0],
            role=user_data["role"],
            department=user_data["department"],
            email_verified=True,
            hashed_password=hash_password(user_data["password"]),
            created_at=clock.now(),
        ))
        print(f"  OK    {user_data['email']} (role: {user_data['role'].value})")
        created += 1

    print(f"\nDone! Created: {created}, Skipped: {skipped}")
    return created, skipped

def main():
    print(f"Connecting to: {config.MONGODB_URL}")
    client, db = store.connect()
    try:
        store.ensure_indexes(db)
        seed(store.MongoUserStore(db))
    finally:
        client.close()

if __name__ == "__main__":
    main()
