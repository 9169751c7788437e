from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Branch
from .auth_service import normalize_branch_code
from .branch_user_service import provision_default_admin
from .concurrency import lock_for_update, run_with_retry
from . import sales_service


def _validate_tax_rate(tax_rate_bps) -> int:
    try:
        value = int(tax_rate_bps)
    except (TypeError, ValueError):
        raise ValidationError("tax_rate_bps must be an integer", details={"field": "tax_rate_bps"})
    if value < 0 or value > 10000:
        raise ValidationError("tax_rate_bps must be between 0 and 10000", details={"field": "tax_rate_bps"})
    return value


def create_branch(code: str, name: str, tax_rate_bps: int = 0) -> Branch:
    """
    Create a branch with its invoice counter and its default admin user
    (written to both stores).
    """
    code = normalize_branch_code(code)
    if not code:
        raise ValidationError("Branch code is required", details={"field": "code"})
    if not name or not name.strip():
        raise ValidationError("Branch name is required", details={"field": "name"})
    tax_rate_bps = _validate_tax_rate(tax_rate_bps)

    def _op():
        if db.session.query(Branch.id).filter_by(code=code).first():
            raise ValidationError(f"Branch code '{code}' already exists", details={"field": "code"})

        branch = Branch(code=code, name=name.strip(), tax_rate_bps=tax_rate_bps)
        db.session.add(branch)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Branch code '{code}' already exists", details={"field": "code"})
        return branch

    branch = run_with_retry(_op)
    current_app.logger.info("Branch %s (%s) created", branch.id, branch.code)

    sales_service.seed_invoice_sequence(branch.id)
    provision_default_admin(branch.id)
    return branch


def update_branch(
    branch_id: int,
    *,
    name: str | None = None,
    tax_rate_bps: int | None = None,
    is_active: bool | None = None,
) -> Branch:
    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch:
            raise NotFound("Branch not found")

        if name is not None:
            if not name.strip():
                raise ValidationError("Branch name cannot be empty", details={"field": "name"})
            branch.name = name.strip()
        if tax_rate_bps is not None:
            branch.tax_rate_bps = _validate_tax_rate(tax_rate_bps)
        if is_active is not None:
            branch.is_active = bool(is_active)

        db.session.commit()
        return branch

    return run_with_retry(_op)


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFound("Branch not found")
    return branch


def list_branches(include_inactive: bool = False) -> list[Branch]:
    query = db.session.query(Branch)
    if not include_inactive:
        query = query.filter(Branch.is_active.is_(True))
    return query.order_by(Branch.code.asc()).all()
