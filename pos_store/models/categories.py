from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class Category(db.Model):
    """
    Product category, arranged as a tree through parent_id.

    Root categories have parent_id = NULL. parent_id is not a foreign key and
    the table itself does not rule out cycles, so tree readers track visited ids.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("uq_categories_name", "name", unique=True),
        db.Index("ix_categories_parent_id", "parent_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    parent_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r} parent_id={self.parent_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
