import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.raportal import create_app
from app.raportal.constants import ROLE_SUPERADMIN
from app.raportal.db import session_scope
from app.raportal.modules.associations.service import seed_reference_data
from app.raportal.modules.users.service import create_user, find_by_identifier


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed roles, official associations and the first superadmin in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or ""

    if database_url:
        os.environ["DATABASE_URL"] = database_url
    app = create_app()

    with app.app_context(), session_scope(app) as s:
        seed_reference_data(s)
        if not admin_email:
            print("ADMIN_EMAIL not set; skipping superadmin seed.")
        elif find_by_identifier(s, admin_email) is not None:
            print(f"Superadmin {admin_email} already exists; left unchanged.")
        elif len(admin_password) < 6:
            print("ADMIN_PASSWORD missing or too short; skipping superadmin seed.")
        else:
            user = create_user(
                s,
                email=admin_email,
                password=admin_password,
                first_name="System",
                last_name="Administrator",
                role_key=ROLE_SUPERADMIN,
                association_id=None,
            )
            print(f"Created superadmin {user.email} ({user.user_code}).")

    print("Initialized database (seed_only).")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
