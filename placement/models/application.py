"""Application model."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from placement.db.base import Base


class Application(Base):
    """Job application model.

    One row per (student, job) regardless of status; re-applying after a
    withdrawal resets the existing row.
    """

    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("student_id", "job_posting_id", name="unique_student_job_application"),
    )

    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    job_posting_id = Column(Uuid(as_uuid=True), ForeignKey("job_postings.id"), nullable=False, index=True)

    # Status tracking
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, reviewed, hired, rejected, withdrawn
    rejection_reason = Column(Text)
    reviewed_at = Column(DateTime)

    # Relationships
    student = relationship("Student", back_populates="applications")
    job_posting = relationship("JobPosting", back_populates="applications")

    def __repr__(self):
        return f"<Application {self.student_id} -> {self.job_posting_id} [{self.status}]>"
