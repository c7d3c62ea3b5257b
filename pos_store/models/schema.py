from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow


class SchemaVersion(db.Model):
    """Single-row bookkeeping table holding the applied schema version."""
    __tablename__ = "schema_version"

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False)
    applied_at = db.Column(db.DateTime, nullable=False, default=utcnow)
