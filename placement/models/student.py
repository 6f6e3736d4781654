"""Student model."""

from sqlalchemy import Boolean, Column, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from placement.db.base import Base


class Student(Base):
    """Student profile model (status fields only)."""

    __tablename__ = "students"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255))

    is_hired = Column(Boolean, default=False, nullable=False)

    # Entitlement. No FK: a dangling reference is detected and healed on read.
    current_subscription_id = Column(Uuid(as_uuid=True), nullable=True)
    subscription_tier = Column(String(10), default="free", nullable=False)  # free, paid

    # Relationships
    user = relationship("User")
    applications = relationship("Application", back_populates="student")

    def __repr__(self):
        return f"<Student {self.full_name}>"
