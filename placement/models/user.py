"""User model."""

from sqlalchemy import Boolean, Column, String

from placement.db.base import Base


class User(Base):
    """Account behind a student, a company or an administrator."""

    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default="student", index=True)  # student, company, admin
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
