"""
LeaveType Registry

Sole writer of leave policy fields. Balance rows snapshot the rules they were
seeded from, so edits here never rewrite already-materialized history.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from leave_portal.core.exceptions import NotFoundError, ValidationError
from leave_portal.models.leave_type import LeaveType
from leave_portal.schemas.leave import LeaveTypeCreate, LeaveTypeUpdate
from leave_portal.services.base import BaseService


def _flatten(config) -> Dict[str, Any]:
    """Turn the nested create/update payload into LeaveType column values."""
    values = config.model_dump(exclude_unset=isinstance(config, LeaveTypeUpdate))
    carry = values.pop("carry_over_rules", None)
    accrual = values.pop("accrual_rules", None)
    if carry is not None:
        values["carry_over_enabled"] = carry["enabled"]
        values["max_carry_over_days"] = carry["max_carry_over_days"]
        values["carry_over_expiry_months"] = carry["expiry_months"]
    if accrual is not None:
        values["accrual_enabled"] = accrual["enabled"]
        values["accrual_rate"] = accrual["accrual_rate"]
        values["max_accrual_days"] = accrual["max_accrual_days"]
        values["start_accrual_after_months"] = accrual["start_accrual_after_months"]
    return values


def validate_policy(values: Dict[str, Any]) -> None:
    """
    Check a complete set of LeaveType column values.

    Raises:
        ValidationError: naming the offending field.
    """
    name = (values.get("name") or "").strip()
    if not name:
        raise ValidationError("Leave type name is required", field="name")

    max_days = values.get("max_days_per_year")
    if max_days is None or max_days <= 0:
        raise ValidationError("max_days_per_year must be greater than 0", field="max_days_per_year")

    if values.get("carry_over_enabled"):
        carry_cap = values.get("max_carry_over_days") or 0
        if carry_cap < 0 or carry_cap > max_days:
            raise ValidationError(
                f"max_carry_over_days must be between 0 and max_days_per_year ({max_days:g})",
                field="carry_over_rules.max_carry_over_days"
            )
        if (values.get("carry_over_expiry_months") or 0) < 0:
            raise ValidationError("expiry_months cannot be negative", field="carry_over_rules.expiry_months")

    if values.get("accrual_enabled"):
        if (values.get("accrual_rate") or 0) <= 0:
            raise ValidationError("accrual_rate must be greater than 0", field="accrual_rules.accrual_rate")
        accrual_cap = values.get("max_accrual_days") or 0
        if accrual_cap <= 0 or accrual_cap > max_days:
            raise ValidationError(
                f"max_accrual_days must be between 0 and max_days_per_year ({max_days:g})",
                field="accrual_rules.max_accrual_days"
            )
        if (values.get("start_accrual_after_months") or 0) < 0:
            raise ValidationError(
                "start_accrual_after_months cannot be negative",
                field="accrual_rules.start_accrual_after_months"
            )


class LeaveTypeRegistry(BaseService):

    def create_type(self, config: LeaveTypeCreate, created_by: Optional[str] = None) -> LeaveType:
        values = _flatten(config)
        values["name"] = values["name"].strip()
        validate_policy(values)
        self._ensure_unique_name(values["name"])

        leave_type = LeaveType(**values, created_by=created_by, is_active=True)
        self.db.add(leave_type)
        self._save(values["name"])
        self.db.refresh(leave_type)
        self.log_info(f"Created leave type {leave_type.id} '{leave_type.name}'")
        return leave_type

    def update_type(self, type_id: int, changes: LeaveTypeUpdate) -> LeaveType:
        """Partial update. Existing balance rows keep their seed snapshot."""
        leave_type = self.get(type_id)
        updates = _flatten(changes)
        if "name" in updates and updates["name"] is not None:
            updates["name"] = updates["name"].strip()

        merged = {column.name: getattr(leave_type, column.name) for column in LeaveType.__table__.columns}
        merged.update(updates)
        validate_policy(merged)
        if merged["name"] != leave_type.name:
            self._ensure_unique_name(merged["name"])

        for key, value in updates.items():
            setattr(leave_type, key, value)
        self._save(merged["name"])
        self.db.refresh(leave_type)
        self.log_info(f"Updated leave type {type_id}: {sorted(updates)}")
        return leave_type

    def deactivate(self, type_id: int) -> LeaveType:
        """Blocks new requests. Balances and request history are left alone."""
        leave_type = self.get(type_id)
        if leave_type.is_active:
            leave_type.is_active = False
            self._commit()
            self.db.refresh(leave_type)
            self.log_info(f"Deactivated leave type {type_id}")
        return leave_type

    def get(self, type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, type_id)
        if not leave_type:
            raise NotFoundError("LeaveType", type_id)
        return leave_type

    def list_active(self, role: Optional[str] = None, department: Optional[str] = None) -> List[LeaveType]:
        types = self.db.query(LeaveType).filter(LeaveType.is_active == True).order_by(LeaveType.name).all()  # noqa: E712
        return [t for t in types if self.is_applicable(t, role, department)]

    @staticmethod
    def is_applicable(leave_type: LeaveType, role: Optional[str], department: Optional[str]) -> bool:
        """Active and in scope for the role/department. Empty scope lists match everyone."""
        return bool(leave_type.is_active) and leave_type.applies_to(role, department)

    def _ensure_unique_name(self, name: str):
        existing = self.db.query(LeaveType.id).filter(LeaveType.name == name).first()
        if existing:
            raise ValidationError(f"A leave type named '{name}' already exists", field="name")

    def _save(self, name: str):
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(f"A leave type named '{name}' already exists", field="name")
        except Exception:
            self.db.rollback()
            raise
