from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///civil_registry.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Relative paths resolve against the Flask instance folder.
    DOCUMENT_STORAGE_DIR = os.getenv("DOCUMENT_STORAGE_DIR", "storage")
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(16 * 1024 * 1024)))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
