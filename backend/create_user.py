import os

import psycopg2
from dotenv import load_dotenv

from backend import app_context
from backend.app.billing import BillingError
from backend.app.billing.repository import create_schema
from backend.app.services.billing import get_account_service

load_dotenv()

DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "billing_db"),
    user=os.getenv("DB_USER", "billing_user"),
    password=os.getenv("DB_PASSWORD", "billing_pass"),
)

def main():
    app_context.configure(get_conn=lambda: psycopg2.connect(**DB_CFG))
    create_schema()

    external_id = input("Identity provider user id: ").strip()
    email = input("Email: ").strip()
    name = input("Display name (optional): ").strip()
    if not external_id or not email:
        print("User id and email are required.")
        return

    try:
        user = get_account_service().create_user(email=email, name=name, external_id=external_id)
    except BillingError as exc:
        print(f"Failed: {exc.message}")
        return
    print(f"Done. User {user.id} -> customer {user.customer_id} (existing users are returned unchanged.)")

if __name__ == "__main__":
    main()
