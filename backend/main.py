import logging
import math
import os

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI

from backend import app_context
from backend.app.billing.repository import create_schema
from backend.app.routes.billing import router as billing_router
from backend.app.routes.webhooks import router as webhooks_router
from backend.app.services.billing import validate_configuration


load_dotenv()

def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))

DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "billing_db"),
    user=os.getenv("DB_USER", "billing_user"),
    password=os.getenv("DB_PASSWORD", "billing_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

DB_CREATE_SCHEMA = os.getenv("DB_CREATE_SCHEMA", "0").lower() in {"1", "true", "yes"}

logger = logging.getLogger("billing")


def get_conn():
    return psycopg2.connect(**DB_CFG)


app_context.configure(get_conn=get_conn)

app = FastAPI(title="Content Billing API")

app.include_router(webhooks_router)
app.include_router(billing_router)


@app.on_event("startup")
def check_billing_setup() -> None:
    validate_configuration()
    if DB_CREATE_SCHEMA:
        create_schema()
        logger.info("Billing schema created/verified")


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
