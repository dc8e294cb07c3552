# tools/reset_admin_password.py
# Purpose: force-reset an admin account password (bcrypt, 72 bytes max)
# Usage: python tools/reset_admin_password.py admin@bookstore.local "NewPassword123!"

import sys

from dotenv import load_dotenv

load_dotenv()

from sqlalchemy import select

from bookstore import models as m
from bookstore.db.session import SessionLocal
from bookstore.security.password import MAX_PASSWORD_BYTES, hash_password


def run(email: str, new_password: str) -> int:
    with SessionLocal() as session:
        user = session.execute(
            select(m.User).where(
                m.User.email == email.strip().lower(),
                m.User.is_deleted.is_(False),
            )
        ).scalar_one_or_none()
        if user is None:
            print(f"Warning: no account with email {email}. Create it first.")
            return 1
        if user.role != "admin":
            print(f"Error: {email} is not an admin account.")
            return 1

        user.password_hash = hash_password(new_password)
        user.updated_at = m.utcnow()
        session.commit()

    print(f"Done: password for {email} has been reset.")
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print('Usage: python tools/reset_admin_password.py <email> "NewPassword123!"')
        sys.exit(1)
    email, new_pw = sys.argv[1], sys.argv[2]
    if len(new_pw.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print("Error: bcrypt cannot take passwords longer than 72 bytes. Use a shorter one.")
        sys.exit(1)
    sys.exit(run(email, new_pw))
