from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.lending_models import Category, Tool
from services.errors import ConflictError, NotFoundError, ValidationError


def get_category_or_404(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _ensure_unique_name(db: Session, name: str, exclude_id: int | None = None) -> None:
    stmt = select(Category.CategoryID).where(func.lower(Category.Name) == name.lower())
    if exclude_id:
        stmt = stmt.where(Category.CategoryID != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError("Category with this name already exists", field="name")


def create_category(db: Session, name: str | None, description: str | None = None) -> Category:
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("name is required", field="name")
    _ensure_unique_name(db, clean_name)
    category = Category(Name=clean_name, Description=description)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(db: Session, category_id: int, name: str | None, description: str | None) -> Category:
    category = get_category_or_404(db, category_id)
    if name is not None:
        clean_name = name.strip()
        if not clean_name:
            raise ValidationError("name cannot be empty", field="name")
        _ensure_unique_name(db, clean_name, exclude_id=category_id)
        category.Name = clean_name
    if description is not None:
        category.Description = description
    db.commit()
    return category


def delete_category(db: Session, category_id: int) -> None:
    category = get_category_or_404(db, category_id)
    in_use = db.execute(select(func.count(Tool.ToolID)).where(Tool.CategoryID == category_id)).scalar()
    if in_use:
        raise ConflictError("Cannot delete a category that still has tools")
    db.delete(category)
    db.commit()


def list_categories(db: Session) -> list[dict]:
    counts = dict(
        db.execute(
            select(Tool.CategoryID, func.count(Tool.ToolID))
            .group_by(Tool.CategoryID)
        ).all()
    )
    categories = db.execute(select(Category).order_by(Category.Name)).scalars().all()
    return [serialize_category(category, counts.get(category.CategoryID, 0)) for category in categories]


def serialize_category(category: Category, tool_count: int | None = None) -> dict:
    payload = {
        "categoryID": category.CategoryID,
        "name": category.Name,
        "description": category.Description,
        "createdDate": category.CreatedDate,
    }
    if tool_count is not None:
        payload["toolCount"] = tool_count
    return payload
