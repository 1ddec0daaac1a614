"""
Barrier Evaluation Tracker — SQLAlchemy models package.

The shared ``db`` extension object lives here so every model module can do
``from bmt.models import db`` without importing the app factory.
"""

import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _uuid():
    """Generate a new UUID4 string for primary keys."""
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None
