import logging
from typing import Optional

from sqlalchemy.orm import Session

from leave_portal.database import SessionLocal
from leave_portal.models.leave_type import LeaveType
from leave_portal.schemas.leave import CarryOverRules, LeaveTypeCreate
from leave_portal.services.leave_type_registry import LeaveTypeRegistry

logger = logging.getLogger(__name__)

DEFAULT_LEAVE_TYPES = [
    LeaveTypeCreate(
        name="Annual Leave",
        description="Standard annual vacation leave",
        color="#3B82F6",
        max_days_per_year=20,
        carry_over_rules=CarryOverRules(enabled=True, max_carry_over_days=5, expiry_months=3),
    ),
    LeaveTypeCreate(
        name="Sick Leave",
        description="Medical or health-related leave",
        color="#EF4444",
        max_days_per_year=10,
        requires_approval=False,
    ),
    LeaveTypeCreate(
        name="Personal Leave",
        description="Personal matters and emergencies",
        color="#8B5CF6",
        max_days_per_year=5,
    ),
]


def init_system_data(db: Optional[Session] = None) -> int:
    """
    Seeds the default leave types when none exist yet.
    Returns the number of types created.
    """
    owns_session = db is None
    db = db or SessionLocal()
    try:
        existing = db.query(LeaveType).count()
        if existing:
            logger.info(f"System initialization check: {existing} leave type(s) found.")
            return 0

        logger.info("Running startup initialization...")
        registry = LeaveTypeRegistry(db)
        for config in DEFAULT_LEAVE_TYPES:
            registry.create_type(config, created_by="system")
        logger.info(f"✓ Seeded {len(DEFAULT_LEAVE_TYPES)} default leave types.")
        return len(DEFAULT_LEAVE_TYPES)
    finally:
        if owns_session:
            db.close()
