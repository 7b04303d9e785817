import pytest

from leave_portal.core.exceptions import NotFoundError, ValidationError
from leave_portal.schemas.leave import AccrualRules, CarryOverRules, LeaveTypeCreate, LeaveTypeUpdate
from leave_portal.services.leave_type_registry import LeaveTypeRegistry


def test_create_flattens_rules(db_session, make_leave_type):
    leave_type = make_leave_type(
        name="  Annual Leave ",
        max_days=20,
        carry_over=CarryOverRules(enabled=True, max_carry_over_days=5, expiry_months=3),
        accrual=AccrualRules(enabled=True, accrual_rate=1.5, max_accrual_days=18, start_accrual_after_months=3),
    )
    assert leave_type.id is not None
    assert leave_type.name == "Annual Leave"
    assert leave_type.is_active is True
    assert leave_type.created_by == "hr-1"
    assert leave_type.carry_over_enabled is True
    assert leave_type.max_carry_over_days == 5
    assert leave_type.carry_over_expiry_months == 3
    assert leave_type.accrual_rate == 1.5
    assert leave_type.start_accrual_after_months == 3

@pytest.mark.parametrize("kwargs, field", [
    ({"name": "   "}, "name"),
    ({"max_days": 0}, "max_days_per_year"),
    ({"carry_over": CarryOverRules(enabled=True, max_carry_over_days=25)}, "carry_over_rules.max_carry_over_days"),
    ({"carry_over": CarryOverRules(enabled=True, max_carry_over_days=5, expiry_months=-1)},
     "carry_over_rules.expiry_months"),
    ({"accrual": AccrualRules(enabled=True, accrual_rate=0, max_accrual_days=10)}, "accrual_rules.accrual_rate"),
    ({"accrual": AccrualRules(enabled=True, accrual_rate=1, max_accrual_days=30)}, "accrual_rules.max_accrual_days"),
])
def test_create_rejects_invalid_policy(make_leave_type, kwargs, field):
    with pytest.raises(ValidationError) as exc:
        make_leave_type(**kwargs)
    assert exc.value.field == field
    assert exc.value.status_code == 422

def test_disabled_rules_are_not_validated(make_leave_type):
    # A carry-over cap above max_days only matters when carry-over is on
    leave_type = make_leave_type(carry_over=CarryOverRules(enabled=False, max_carry_over_days=50))
    assert leave_type.carry_over_enabled is False

def test_duplicate_name_is_rejected(make_leave_type):
    make_leave_type(name="Sick Leave")
    with pytest.raises(ValidationError) as exc:
        make_leave_type(name="Sick Leave")
    assert exc.value.field == "name"

def test_update_merges_and_revalidates(db_session, make_leave_type):
    registry = LeaveTypeRegistry(db_session)
    leave_type = make_leave_type(carry_over=CarryOverRules(enabled=True, max_carry_over_days=5))

    updated = registry.update_type(leave_type.id, LeaveTypeUpdate(description="Paid time off", max_days_per_year=25))
    assert updated.description == "Paid time off"
    assert updated.max_days_per_year == 25
    assert updated.max_carry_over_days == 5

    # Lowering the yearly maximum below the carry-over cap breaks the policy
    with pytest.raises(ValidationError) as exc:
        registry.update_type(leave_type.id, LeaveTypeUpdate(max_days_per_year=4))
    assert exc.value.field == "carry_over_rules.max_carry_over_days"
    db_session.refresh(leave_type)
    assert leave_type.max_days_per_year == 25

def test_update_rename_checks_uniqueness(db_session, make_leave_type):
    make_leave_type(name="Sick Leave")
    other = make_leave_type(name="Study Leave")
    with pytest.raises(ValidationError):
        LeaveTypeRegistry(db_session).update_type(other.id, LeaveTypeUpdate(name="Sick Leave"))

def test_deactivate_hides_type_but_keeps_it(db_session, make_leave_type):
    registry = LeaveTypeRegistry(db_session)
    leave_type = make_leave_type(name="Sabbatical")
    make_leave_type(name="Annual Leave")

    registry.deactivate(leave_type.id)

    assert [t.name for t in registry.list_active()] == ["Annual Leave"]
    assert registry.get(leave_type.id).is_active is False

def test_list_active_filters_by_role_and_department(db_session, make_leave_type):
    make_leave_type(name="Annual Leave")
    make_leave_type(name="On-call Recovery", applicable_departments=["Operations"])
    make_leave_type(name="Manager Retreat", applicable_roles=["MANAGER"])
    registry = LeaveTypeRegistry(db_session)

    names = [t.name for t in registry.list_active(role="EMPLOYEE", department="Engineering")]
    assert names == ["Annual Leave"]

    names = [t.name for t in registry.list_active(role="MANAGER", department="Operations")]
    assert names == ["Annual Leave", "Manager Retreat", "On-call Recovery"]

def test_is_applicable(db_session, make_leave_type):
    registry = LeaveTypeRegistry(db_session)
    leave_type = make_leave_type(name="On-call Recovery", applicable_roles=["EMPLOYEE"], applicable_departments=["Operations"])

    assert registry.is_applicable(leave_type, "EMPLOYEE", "Operations")
    assert not registry.is_applicable(leave_type, "EMPLOYEE", "Engineering")
    assert not registry.is_applicable(leave_type, None, "Operations")

    registry.deactivate(leave_type.id)
    assert not registry.is_applicable(leave_type, "EMPLOYEE", "Operations")

def test_get_unknown_type(db_session):
    with pytest.raises(NotFoundError):
        LeaveTypeRegistry(db_session).get(999)

def test_default_leave_types_are_seeded_once(db_session):
    from leave_portal.core.init_system import init_system_data

    assert init_system_data(db_session) == 3
    assert init_system_data(db_session) == 0

    names = [t.name for t in LeaveTypeRegistry(db_session).list_active()]
    assert names == ["Annual Leave", "Personal Leave", "Sick Leave"]
