from sqlalchemy import Column, Integer, String, Float, Boolean, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_portal.database import Base

class LeaveBalance(Base):
    """
    Ledger row per (employee, leave type, year).

    The seed columns are a snapshot of the leave type's rules at the moment
    the row was materialized, so later policy edits never rewrite it.
    carry_over_days follows the prior year's remaining days (capped at
    carry_over_cap) and is kept current by the BalanceReconciler.
    used_days/pending_days are written only by the BalanceReconciler, and
    every write is guarded by `version` (UPDATE ... WHERE version = :seen).
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balance_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), index=True, nullable=False)
    year = Column(Integer, nullable=False, index=True)

    # Seed snapshot
    base_entitlement = Column(Float, default=0.0, nullable=False)
    accrual_enabled = Column(Boolean, default=False, nullable=False)
    accrual_rate = Column(Float, default=0.0)
    max_accrual_days = Column(Float, default=0.0)
    accrual_start_date = Column(Date, nullable=True)
    carry_over_days = Column(Float, default=0.0, nullable=False)
    carry_over_cap = Column(Float, default=0.0, nullable=False)
    carry_over_expires_on = Column(Date, nullable=True)

    used_days = Column(Float, default=0.0, nullable=False)
    pending_days = Column(Float, default=0.0, nullable=False)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    leave_type = relationship("LeaveType")

    __mapper_args__ = {"version_id_col": version}

    @property
    def key(self):
        return (self.employee_id, self.leave_type_id, self.year)

    def __repr__(self):
        return (
            f"<LeaveBalance {self.employee_id}/{self.leave_type_id}/{self.year} "
            f"used={self.used_days:g} pending={self.pending_days:g} v{self.version}>"
        )
