# backend/stockpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Storage below this many units counts as "low stock" in listings and reports
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))

    # Adjustments listed per request when the caller gives no limit
    ADJUSTMENT_LIST_LIMIT = int(os.environ.get("ADJUSTMENT_LIST_LIMIT", "200"))

    # Sales tax in basis points applied to every sale subtotal (825 = 8.25%)
    SALES_TAX_BPS = int(os.environ.get("SALES_TAX_BPS", "0"))

    # Browser origins allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = frozenset(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
