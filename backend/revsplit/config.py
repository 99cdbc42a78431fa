from __future__ import annotations

import os


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
    DEFAULT_COMPANY_PROFIT_PERCENTAGE = os.getenv("DEFAULT_COMPANY_PROFIT_PERCENTAGE", "25")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
