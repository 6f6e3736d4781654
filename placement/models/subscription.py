"""Plan catalog and student subscription models."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from placement.db.base import Base
from placement.utils.constants import BillingCycle


class Plan(Base):
    """A purchasable plan. Read-only to the entitlement engine."""

    __tablename__ = "plans"

    name = Column(String(120), nullable=False)
    description = Column(Text)
    tier = Column(String(10), nullable=False, default="paid")  # free, paid
    max_applications = Column(Integer, nullable=True)  # NULL = unlimited
    billing_cycle = Column(String(20), nullable=False, default=BillingCycle.MONTHLY.value)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self):
        return f"<Plan {self.name} ({self.max_applications})>"


class Subscription(Base):
    """A student's purchased plan instance."""

    __tablename__ = "subscriptions"

    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    plan_id = Column(Uuid(as_uuid=True), ForeignKey("plans.id"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, active, expired, cancelled
    auto_renew = Column(Boolean, default=False, nullable=False)

    # Relationships
    plan = relationship("Plan")

    def __repr__(self):
        return f"<Subscription {self.student_id} [{self.status}] until {self.end_date}>"
