"""
Balance Reconciler

Sole writer of LeaveBalance.used_days / pending_days, and of the carried
days those feed into the following year's row once that row exists.

Every mutation goes through reserve / commit / release, is checked against
the entitlement before it is flushed, and is written with the row's version
guard. `run_exclusive` is the critical section the workflow wraps around
check-then-mutate sequences: an in-process lock per balance key, plus a
bounded tenacity retry when the optimistic version check loses a race with
another process.
"""
from datetime import date
from typing import Callable, Hashable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from leave_portal.core.config import settings
from leave_portal.core.exceptions import BalanceConflictError, InsufficientBalanceError, TransientError
from leave_portal.core.locks import KeyedLockRegistry, balance_locks
from leave_portal.models.leave_balance import LeaveBalance
from leave_portal.models.leave_type import LeaveType
from leave_portal.services.base import BaseService
from leave_portal.services.leave_ledger import (
    EPSILON,
    BalanceLedger,
    carry_over_days,
    remaining_days,
    total_entitlement,
)

T = TypeVar("T")


class BalanceReconciler(BaseService):

    def __init__(self, db: Session, locks: Optional[KeyedLockRegistry] = None):
        super().__init__(db)
        self.locks = locks or balance_locks

    # --- Mutations ---

    def reserve(self, balance: LeaveBalance, days: float, as_of: Optional[date] = None) -> LeaveBalance:
        """Hold `days` for a pending request."""
        return self._apply(balance, "reserve", pending_delta=days, used_delta=0.0, as_of=as_of)

    def commit(self, balance: LeaveBalance, days: float, as_of: Optional[date] = None) -> LeaveBalance:
        """Move a reservation from pending to used."""
        return self._apply(balance, "commit", pending_delta=-days, used_delta=days, as_of=as_of)

    def release(self, balance: LeaveBalance, days: float, as_of: Optional[date] = None) -> LeaveBalance:
        """Drop a reservation without using it."""
        return self._apply(balance, "release", pending_delta=-days, used_delta=0.0, as_of=as_of)

    def _apply(
        self,
        balance: LeaveBalance,
        action: str,
        pending_delta: float,
        used_delta: float,
        as_of: Optional[date]
    ) -> LeaveBalance:
        as_of = as_of or date.today()
        before_pending = balance.pending_days or 0.0
        before_used = balance.used_days or 0.0
        after_pending = before_pending + pending_delta
        after_used = before_used + used_delta

        if after_pending < -EPSILON or after_used < -EPSILON:
            # A release/commit larger than what is held means another writer
            # already consumed the reservation.
            raise BalanceConflictError(
                f"{action} of {abs(pending_delta):g} days would make balance {balance.key} negative"
            )

        # Releases only shrink used+pending, so they cannot break the ceiling.
        if pending_delta + used_delta >= 0:
            entitlement = total_entitlement(balance, as_of)
            if after_used + after_pending > entitlement + EPSILON:
                leave_type = self.db.get(LeaveType, balance.leave_type_id)
                raise InsufficientBalanceError(
                    leave_type_id=balance.leave_type_id,
                    leave_type_name=leave_type.name if leave_type else str(balance.leave_type_id),
                    requested_days=abs(pending_delta) or used_delta,
                    remaining_days=max(entitlement - before_used - before_pending, 0.0),
                )

        balance.pending_days = after_pending
        balance.used_days = after_used
        try:
            self.db.flush()
        except StaleDataError as e:
            # Restore the in-memory row so nothing downstream reads the loser's values
            balance.pending_days = before_pending
            balance.used_days = before_used
            raise BalanceConflictError(f"Balance {balance.key} changed underneath {action}") from e

        self._logger.info(
            f"Balance {action}",
            extra={
                "balance_key": list(balance.key),
                "days": abs(pending_delta) or used_delta,
                "pending_days": after_pending,
                "used_days": after_used,
            }
        )
        if pending_delta + used_delta:
            self._carry_forward(balance)
        return balance

    def _carry_forward(self, balance: LeaveBalance):
        """Re-derive next year's carried days after this year's remaining days moved."""
        following = BalanceLedger(self.db).find(balance.employee_id, balance.leave_type_id, balance.year + 1)
        if following is None or not following.carry_over_cap:
            return
        carried = carry_over_days(remaining_days(balance, date(balance.year, 12, 31)), following.carry_over_cap)
        before = following.carry_over_days or 0.0
        if abs(carried - before) <= EPSILON:
            return

        # Years are always locked in ascending order
        with self.locks.hold(following.key):
            following.carry_over_days = carried
            try:
                self.db.flush()
            except StaleDataError as e:
                following.carry_over_days = before
                raise BalanceConflictError(f"Balance {following.key} changed underneath carry-over") from e

        self._logger.info(
            "Carry-over updated",
            extra={"balance_key": list(following.key), "from_days": before, "to_days": carried}
        )

    # --- Critical section ---

    def run_exclusive(self, key: Hashable, unit: Callable[[], T]) -> T:
        """
        Run `unit` and commit it as one balance transaction for `key`.

        `unit` must re-read everything it needs: after a lost version race
        the session is rolled back and `unit` is called again, at most
        settings.balance_retry_attempts times in total.

        Raises:
            TransientError: lock wait timed out, retries exhausted, or the
                database was unavailable.
            Any domain error raised by `unit`, after rolling back.
        """
        retryer = Retrying(
            stop=stop_after_attempt(settings.balance_retry_attempts),
            wait=wait_exponential(multiplier=0.01, max=0.2),
            retry=retry_if_exception_type(BalanceConflictError),
            reraise=True,
        )
        with self.locks.hold(key):
            try:
                for attempt in retryer:
                    with attempt:
                        return self._run_once(key, unit)
            except BalanceConflictError as e:
                self.log_warning(f"Giving up on balance {key} after repeated conflicts: {e}")
                raise TransientError(
                    "The leave balance was updated concurrently, please retry.",
                    details={"key": list(key) if isinstance(key, tuple) else key}
                ) from e

    def _run_once(self, key: Hashable, unit: Callable[[], T]) -> T:
        try:
            result = unit()
            self.db.commit()
            return result
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            self.log_warning(f"Version conflict on balance {key}, retrying: {e}")
            raise BalanceConflictError(str(e)) from e
        except BalanceConflictError:
            self.db.rollback()
            self.log_warning(f"Version conflict on balance {key}, retrying")
            raise
        except OperationalError as e:
            self.db.rollback()
            self._logger.error(f"Database unavailable during balance update {key}: {e}")
            raise TransientError("The database is temporarily unavailable, please retry.") from e
        except Exception:
            self.db.rollback()
            raise
