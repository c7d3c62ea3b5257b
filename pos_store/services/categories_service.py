# Overview: Category record store accessors and cycle-safe hierarchy resolution.

from __future__ import annotations

from typing import Iterable

from flask import current_app, has_app_context
from sqlalchemy import func

from ..errors import DuplicateKeyError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product
from ..time_utils import utcnow
from ..validation import CATEGORY_POLICY, validate_payload
from .concurrency import unit_of_work

READ_ONLY_FIELDS = {"id", "created_at", "updated_at"}


def _setting(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _clean_category_payload(payload: dict | None) -> dict:
    payload = dict(payload or {})
    for key in READ_ONLY_FIELDS:
        payload.pop(key, None)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    patch.setdefault("parent_id", None)
    patch.setdefault("description", None)
    return patch


def _ensure_name_available(name: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise DuplicateKeyError("name", name, entity="category")


def _require_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("category", category_id)
    return category


def _parent_map() -> dict[int, int | None]:
    return dict(db.session.query(Category.id, Category.parent_id).all())


def _would_create_cycle(category_id: int, parent_id: int | None) -> bool:
    """True if making `parent_id` the parent of `category_id` closes a loop."""
    parents = _parent_map()
    seen: set[int] = set()
    current = parent_id
    while current is not None and current not in seen:
        if current == category_id:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


def create_category(payload: dict) -> dict:
    patch = _clean_category_payload(payload)

    with unit_of_work() as session:
        _ensure_name_available(patch["name"])
        if patch["parent_id"] is not None:
            _require_category(patch["parent_id"])

        now = utcnow()
        category = Category(created_at=now, updated_at=now, **patch)
        session.add(category)
        session.flush()

    return category.to_dict()


def get_categories() -> list[dict]:
    categories = db.session.query(Category).order_by(Category.id.asc()).all()
    return [c.to_dict() for c in categories]


def get_category_by_id(category_id: int) -> dict | None:
    category = db.session.get(Category, category_id)
    return category.to_dict() if category else None


def update_category(category_id: int, payload: dict) -> dict:
    """
    Replace a category. A rename refreshes the category snapshot on every
    product that references it by id, in the same unit of work.
    """
    patch = _clean_category_payload(payload)

    with unit_of_work() as session:
        category = _require_category(category_id)
        _ensure_name_available(patch["name"], exclude_id=category.id)

        parent_id = patch["parent_id"]
        if parent_id is not None:
            _require_category(parent_id)
            if _would_create_cycle(category.id, parent_id):
                raise ValidationError("A category cannot be its own ancestor")

        renamed = category.name != patch["name"]
        for key, value in patch.items():
            setattr(category, key, value)
        category.updated_at = utcnow()

        if renamed:
            products = session.query(Product).filter(Product.category_id == category.id).all()
            for product in products:
                product.category = category.name

    return category.to_dict()


def delete_category(category_id: int) -> None:
    """
    Delete a category.

    Child categories move up to the deleted category's parent. Products keep
    their name snapshot but lose the category_id reference.
    """
    with unit_of_work() as session:
        category = _require_category(category_id)

        children = session.query(Category).filter(Category.parent_id == category.id).all()
        for child in children:
            child.parent_id = category.parent_id if category.parent_id != child.id else None

        products = session.query(Product).filter(Product.category_id == category.id).all()
        for product in products:
            product.category_id = None

        session.delete(category)


def get_category_path(
    category: dict | int,
    categories: Iterable[dict] | None = None,
    *,
    separator: str | None = None,
    max_depth: int | None = None,
) -> str:
    """
    Resolve "Root > Child > Leaf" for a category by walking parent_id upward.

    Stops at a root, at a parent that no longer exists, at an id it has
    already visited (corrupted cycle) or after max_depth levels.
    """
    if separator is None:
        separator = _setting("CATEGORY_PATH_SEPARATOR", " > ")
    if max_depth is None:
        max_depth = _setting("MAX_CATEGORY_DEPTH", 64)
    if categories is None:
        categories = get_categories()

    by_id = {c["id"]: c for c in categories}
    node = by_id.get(category) if isinstance(category, int) else category
    if node is None:
        raise NotFoundError("category", category)

    names: list[str] = []
    visited: set[int] = set()
    while node is not None and node.get("id") not in visited and len(names) < max_depth:
        visited.add(node.get("id"))
        names.append(node["name"])
        parent_id = node.get("parent_id")
        node = by_id.get(parent_id) if parent_id is not None else None

    return separator.join(reversed(names))


def list_categories_with_paths() -> list[dict]:
    """Every category with its resolved path, sorted by path."""
    categories = get_categories()
    rows = []
    for c in categories:
        row = dict(c)
        row["path"] = get_category_path(c, categories)
        rows.append(row)
    rows.sort(key=lambda r: r["path"].casefold())
    return rows


def _product_counts(categories: list[dict]) -> dict[int, int]:
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.category_id.isnot(None))
        .group_by(Product.category_id)
        .all()
    )
    # Legacy rows without category_id are matched on the name snapshot
    legacy = dict(
        db.session.query(Product.category, func.count(Product.id))
        .filter(Product.category_id.is_(None))
        .group_by(Product.category)
        .all()
    )
    return {c["id"]: counts.get(c["id"], 0) + legacy.get(c["name"], 0) for c in categories}


def get_category_tree() -> list[dict]:
    """
    Nested category tree with product counts.

    Categories whose parent is missing are treated as roots. Members of a
    corrupted cycle appear once, under the first of them reached.
    """
    categories = get_categories()
    counts = _product_counts(categories)
    by_id = {c["id"]: c for c in categories}

    children_map: dict[int, list[dict]] = {}
    roots: list[dict] = []
    for c in categories:
        parent_id = c["parent_id"]
        if parent_id is None or parent_id not in by_id or parent_id == c["id"]:
            roots.append(c)
        else:
            children_map.setdefault(parent_id, []).append(c)

    visited: set[int] = set()

    def _build(node: dict) -> dict:
        visited.add(node["id"])
        subcategories = [
            _build(child)
            for child in children_map.get(node["id"], [])
            if child["id"] not in visited
        ]
        return dict(node, product_count=counts.get(node["id"], 0), subcategories=subcategories)

    tree = [_build(root) for root in roots]
    for c in categories:
        if c["id"] not in visited:
            tree.append(_build(c))
    return tree
