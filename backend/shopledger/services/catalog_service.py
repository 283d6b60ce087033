# Overview: Service-layer operations for products, categories and suppliers.

"""
Catalog Service

A product becomes effectively immutable in identity once the ledger points at
it: delete is refused while any purchase batch, sale line, inventory summary
or supplier return references the product.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    Category,
    InventorySummary,
    Product,
    PurchaseBatch,
    SaleLine,
    Supplier,
    SupplierReturn,
)
from ..models.catalog import UNCATEGORIZED
from ..pagination import paginate
from ..validation import ModelValidationPolicy, require_text, validate_payload
from .concurrency import lock_for_update, run_with_retry


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "details", "supplier_id", "requires_serial", "is_active"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "shop_name", "phone", "email", "address"},
    required_on_create={"name"},
)


def _normalize_product_payload(payload: dict) -> dict:
    # The register UI posts "title"; the API documents "name".
    data = dict(payload or {})
    if "name" not in data and "title" in data:
        data["name"] = data["title"]
    return data


def _resolve_category(name) -> Category | None:
    """Find or create a category by name; blank or "Uncategorized" means none."""
    if name is None:
        return None
    name = str(name).strip()
    if not name or name == UNCATEGORIZED:
        return None
    category = db.session.query(Category).filter(Category.name == name).first()
    if category is None:
        category = Category(name=name)
        db.session.add(category)
        db.session.flush()
    return category


def _require_supplier(supplier_id) -> None:
    if supplier_id is None:
        return
    if db.session.get(Supplier, supplier_id) is None:
        raise ValidationError("Supplier not found")


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_products(
    search: str | None = None,
    *,
    category: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.outerjoin(Category, Product.category_id == Category.id).filter(
            or_(Product.name.ilike(like), Product.details.ilike(like), Category.name.ilike(like))
        )
    if category:
        if category == UNCATEGORIZED:
            query = query.filter(Product.category_id.is_(None))
        else:
            query = query.join(Category, Product.category_id == Category.id).filter(Category.name == category)
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, per_page)


def create_product(payload: dict) -> Product:
    data = _normalize_product_payload(payload)
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    _require_supplier(patch.get("supplier_id"))

    try:
        product = Product(**patch)
        product.category = _resolve_category(data.get("category"))
        db.session.add(product)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Product %s created (%s)", product.id, product.name)
    return product


def update_product(product_id: int, payload: dict) -> Product:
    data = _normalize_product_payload(payload)
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=True)
    if "supplier_id" in patch:
        _require_supplier(patch["supplier_id"])

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found")
        for key, value in patch.items():
            setattr(product, key, value)
        if "category" in data:
            product.category = _resolve_category(data.get("category"))
        db.session.commit()
        return product

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def _product_references(product_id: int) -> list[str]:
    checks = (
        ("purchases", PurchaseBatch),
        ("sales", SaleLine),
        ("inventory", InventorySummary),
        ("supplier returns", SupplierReturn),
    )
    found = []
    for label, model in checks:
        exists = db.session.query(model.id).filter(model.product_id == product_id).first()
        if exists is not None:
            found.append(label)
    return found


def delete_product(product_id: int) -> None:
    product = get_product(product_id)
    references = _product_references(product_id)
    if references:
        raise ConflictError(
            "Cannot delete product: it is referenced by " + ", ".join(references),
            details={"references": references},
        )
    try:
        db.session.delete(product)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Product %s deleted", product_id)


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(name) -> Category:
    name = require_text(name, "name", max_length=120)
    if name == UNCATEGORIZED:
        raise ValidationError(f"{UNCATEGORIZED} is reserved")
    if db.session.query(Category).filter(Category.name == name).first() is not None:
        raise ConflictError("Category already exists")
    category = Category(name=name)
    try:
        db.session.add(category)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    return category


def list_suppliers(search: str | None = None) -> list[Supplier]:
    query = db.session.query(Supplier)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Supplier.name.ilike(like), Supplier.shop_name.ilike(like)))
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    supplier = Supplier(**patch)
    try:
        db.session.add(supplier)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Supplier %s created (%s)", supplier.id, supplier.name)
    return supplier


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)

    def _op():
        supplier = lock_for_update(db.session.query(Supplier).filter_by(id=supplier_id)).first()
        if supplier is None:
            raise NotFoundError("Supplier not found")
        for key, value in patch.items():
            setattr(supplier, key, value)
        db.session.commit()
        return supplier

    try:
        supplier = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Supplier %s updated", supplier_id)
    return supplier


def delete_supplier(supplier_id: int) -> None:
    supplier = get_supplier(supplier_id)
    in_use = db.session.query(Product.id).filter(Product.supplier_id == supplier_id).first()
    if in_use is not None:
        raise ConflictError("Cannot delete supplier: products reference it")
    try:
        db.session.delete(supplier)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _get_category_by_name(name) -> Category:
    name = (str(name).strip() if name is not None else "")
    category = db.session.query(Category).filter(Category.name == name).first()
    if category is None:
        raise NotFoundError("Category not found")
    return category


def rename_category(old_name, new_name) -> Category:
    """Rename in place; products follow through category_id."""
    new_name = require_text(new_name, "name", max_length=120)
    if new_name == UNCATEGORIZED:
        raise ValidationError(f"{UNCATEGORIZED} is reserved")
    category = _get_category_by_name(old_name)
    if new_name == category.name:
        return category
    if db.session.query(Category.id).filter(Category.name == new_name).first() is not None:
        raise ConflictError("Category already exists")

    try:
        previous = category.name
        category.name = new_name
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Category %s renamed %r -> %r", category.id, previous, new_name)
    return category


def delete_category(name) -> None:
    category = _get_category_by_name(name)
    in_use = db.session.query(Product.id).filter(Product.category_id == category.id).first()
    if in_use is not None:
        raise ConflictError("Cannot delete category that is in use by products")
    try:
        db.session.delete(category)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Category %r deleted", category.name)
