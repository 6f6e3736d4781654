"""Company model."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from placement.db.base import Base


class Company(Base):
    """Company model."""

    __tablename__ = "companies"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255))

    # Registration review
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, approved, rejected
    rejection_reason = Column(Text)
    approved_at = Column(DateTime)

    # Relationships
    user = relationship("User")
    jobs = relationship("JobPosting", back_populates="company")

    def __repr__(self):
        return f"<Company {self.name} [{self.status}]>"
