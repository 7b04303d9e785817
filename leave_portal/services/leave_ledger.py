"""
Balance Ledger / Accrual

Entitlement math plus lazy materialization of LeaveBalance rows.

Architecture:
- Pure functions compute day counts, accrual and carry-over from a balance
  row's seed snapshot and an as-of date.
- BalanceLedger reads and creates rows. It never touches used/pending days;
  those belong to the BalanceReconciler.
- Accrual is fractional internally; rounding happens only for display.
"""
import calendar
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from leave_portal.core.exceptions import BalanceConflictError, NotFoundError, ValidationError
from leave_portal.models.leave_balance import LeaveBalance
from leave_portal.models.leave_type import LeaveType
from leave_portal.schemas.leave import BalanceView, EmployeeContext, Entitlement
from leave_portal.services.base import BaseService

# Float slack for comparisons on fractional accrual
EPSILON = 1e-9


def calculate_total_days(start_date: date, end_date: date) -> int:
    """Inclusive whole-day count. A same-day request is 1 day."""
    if end_date < start_date:
        raise ValidationError(
            "End date cannot be before start date",
            field="end_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
        )
    return (end_date - start_date).days + 1


def add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def months_elapsed(start: date, as_of: date) -> int:
    """Completed calendar months between two dates; never negative."""
    if as_of <= start:
        return 0
    months = (as_of.year - start.year) * 12 + (as_of.month - start.month)
    if as_of.day < start.day:
        months -= 1
    return max(months, 0)


def accrued_days(rate: float, cap: float, accrual_start: Optional[date], year: int, as_of: date) -> float:
    """
    Days earned within `year` up to `as_of`, one `rate` per completed month.

    Months are counted from the later of the accrual start and Jan 1, to the
    earlier of `as_of` and Dec 31 (inclusive), and the result is capped.
    """
    window_start = max(accrual_start or date(year, 1, 1), date(year, 1, 1))
    window_end = min(as_of, date(year, 12, 31))
    if window_end < window_start:
        return 0.0
    months = months_elapsed(window_start, window_end + timedelta(days=1))
    earned = (rate or 0.0) * months
    if cap:
        earned = min(cap, earned)
    return max(earned, 0.0)


def carry_over_days(prior_remaining: float, max_carry_over: float) -> float:
    return min(max(prior_remaining, 0.0), max_carry_over or 0.0)


def carry_over_expiry(year: int, expiry_months: Optional[int]) -> Optional[date]:
    """Carried days stop counting on this date. None means they never expire."""
    if not expiry_months:
        return None
    return add_months(date(year, 1, 1), expiry_months)


def round_for_display(days: float, places: int = 2) -> float:
    return round(days, places)


DISPLAY_FIELDS = (
    "base_entitlement", "accrued_days", "carry_over_days",
    "total_entitlement", "used_days", "pending_days", "remaining_days",
)


def display_view(view: BalanceView) -> BalanceView:
    """Rounded copy for presentation. Stored balances stay fractional."""
    return view.model_copy(update={name: round_for_display(getattr(view, name)) for name in DISPLAY_FIELDS})


def earned_entitlement(balance: LeaveBalance, as_of: date) -> float:
    if balance.accrual_enabled:
        return accrued_days(
            balance.accrual_rate, balance.max_accrual_days,
            balance.accrual_start_date, balance.year, as_of
        )
    return balance.base_entitlement or 0.0


def active_carry_over(balance: LeaveBalance, as_of: date) -> float:
    if balance.carry_over_expires_on and as_of >= balance.carry_over_expires_on:
        return 0.0
    return balance.carry_over_days or 0.0


def total_entitlement(balance: LeaveBalance, as_of: date) -> float:
    return earned_entitlement(balance, as_of) + active_carry_over(balance, as_of)


def remaining_days(balance: LeaveBalance, as_of: date) -> float:
    return total_entitlement(balance, as_of) - (balance.used_days or 0.0) - (balance.pending_days or 0.0)


def is_tenured_for_year(hire_date: Optional[date], year: int) -> bool:
    return hire_date is None or hire_date <= date(year, 12, 31)


class BalanceLedger(BaseService):

    def find(self, employee_id: str, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year
        ).first()

    def require(self, employee_id: str, leave_type_id: int, year: int) -> LeaveBalance:
        balance = self.find(employee_id, leave_type_id, year)
        if not balance:
            raise NotFoundError("LeaveBalance", f"{employee_id}/{leave_type_id}/{year}")
        return balance

    def seed(
        self,
        employee: EmployeeContext,
        leave_type: LeaveType,
        year: int,
        with_carry_over: bool = True
    ) -> LeaveBalance:
        """
        Build (but do not persist) the row a first reference would create.

        Carry-over is the prior year's remaining days as of Dec 31, capped.
        A prior year that was never referenced counts as untouched, so its
        remaining days are those of a fresh seed.
        """
        accrual_start = None
        if leave_type.accrual_enabled and employee.hire_date:
            accrual_start = add_months(employee.hire_date, leave_type.start_accrual_after_months or 0)

        carried = 0.0
        cap = 0.0
        expires_on = None
        if leave_type.carry_over_enabled:
            cap = leave_type.max_carry_over_days or 0.0
            expires_on = carry_over_expiry(year, leave_type.carry_over_expiry_months)
            if with_carry_over:
                carried = carry_over_days(self.prior_remaining(employee, leave_type, year), cap)

        tenured = is_tenured_for_year(employee.hire_date, year)
        return LeaveBalance(
            employee_id=employee.employee_id,
            leave_type_id=leave_type.id,
            year=year,
            base_entitlement=leave_type.max_days_per_year if tenured else 0.0,
            accrual_enabled=bool(leave_type.accrual_enabled) and tenured,
            accrual_rate=leave_type.accrual_rate or 0.0,
            max_accrual_days=leave_type.max_accrual_days or 0.0,
            accrual_start_date=accrual_start,
            carry_over_days=carried,
            carry_over_cap=cap,
            carry_over_expires_on=expires_on,
            used_days=0.0,
            pending_days=0.0,
        )

    def prior_remaining(self, employee: EmployeeContext, leave_type: LeaveType, year: int) -> float:
        """Remaining days of `year - 1` on Dec 31, from its row or the seed it would get."""
        if not is_tenured_for_year(employee.hire_date, year - 1):
            return 0.0
        prior = self.find(employee.employee_id, leave_type.id, year - 1)
        if prior is None:
            # Transient: never added to the session
            prior = self.seed(employee, leave_type, year - 1, with_carry_over=False)
        return remaining_days(prior, date(year - 1, 12, 31))

    def entitlement_for(
        self,
        employee: EmployeeContext,
        leave_type: LeaveType,
        year: int,
        as_of: Optional[date] = None
    ) -> Entitlement:
        """Entitlement as of a date, from the stored row or the seed it would get."""
        as_of = as_of or date.today()
        balance = self.find(employee.employee_id, leave_type.id, year)
        if balance is None:
            balance = self.seed(employee, leave_type, year)
        earned = earned_entitlement(balance, as_of)
        carried = active_carry_over(balance, as_of)
        return Entitlement(
            base_days=earned,
            accrued_days=earned if balance.accrual_enabled else 0.0,
            carry_over_days=carried,
            total_entitlement=earned + carried,
        )

    def balance_for(self, employee: EmployeeContext, leave_type: LeaveType, year: int) -> LeaveBalance:
        """
        Return the ledger row, materializing it on first reference.

        Must run inside the balance critical section: the insert is flushed
        but not committed, and a concurrent first reference from another
        process surfaces as BalanceConflictError so the caller can retry.
        """
        balance = self.find(employee.employee_id, leave_type.id, year)
        if balance:
            return balance

        balance = self.seed(employee, leave_type, year)
        self.db.add(balance)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise BalanceConflictError(f"Balance {balance.key} was created concurrently") from e
        self.log_info(
            f"Materialized balance {balance.key}: base={balance.base_entitlement:g} "
            f"carry_over={balance.carry_over_days:g}"
        )
        return balance

    def view(self, balance: LeaveBalance, as_of: Optional[date] = None) -> BalanceView:
        as_of = as_of or date.today()
        earned = earned_entitlement(balance, as_of)
        carried = active_carry_over(balance, as_of)
        total = earned + carried
        return BalanceView(
            employee_id=balance.employee_id,
            leave_type_id=balance.leave_type_id,
            leave_type_name=balance.leave_type.name if balance.leave_type else None,
            year=balance.year,
            base_entitlement=earned,
            accrued_days=earned if balance.accrual_enabled else 0.0,
            carry_over_days=carried,
            carry_over_expires_on=balance.carry_over_expires_on,
            total_entitlement=total,
            used_days=balance.used_days,
            pending_days=balance.pending_days,
            remaining_days=total - balance.used_days - balance.pending_days,
            version=balance.version,
        )

    def list_rows(self, employee_id: Optional[str], year: int) -> List[LeaveBalance]:
        query = self.db.query(LeaveBalance).filter(LeaveBalance.year == year)
        if employee_id:
            query = query.filter(LeaveBalance.employee_id == employee_id)
        return query.order_by(LeaveBalance.employee_id, LeaveBalance.leave_type_id).all()
