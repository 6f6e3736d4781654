"""Job posting model."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from placement.db.base import Base


class JobPosting(Base):
    """Job posting model.

    Content fields are nullable because drafts may be incomplete; ``submit``
    enforces full validation.
    """

    __tablename__ = "job_postings"

    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)

    # Content
    title = Column(String(100))
    description = Column(Text)
    requirements = Column(Text)
    location = Column(String(100))
    job_type = Column(String(50))  # Full-time, Part-time, Contract, Internship, Freelance
    salary_range = Column(String(50))
    deadline = Column(DateTime)

    # Status
    status = Column(String(20), nullable=False, default="draft", index=True)
    rejection_reason = Column(Text)
    approved_at = Column(DateTime)

    # Relationships
    company = relationship("Company", back_populates="jobs")
    applications = relationship("Application", back_populates="job_posting")

    def __repr__(self):
        return f"<JobPosting {self.title} [{self.status}]>"
