"""Common constants."""

from enum import Enum


class UserRole(str, Enum):
    STUDENT = "student"
    COMPANY = "company"
    ADMIN = "admin"


class JobStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNPUBLISHED = "unpublished"
    CLOSED = "closed"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    HIRED = "hired"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class CompanyStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SubscriptionTier(str, Enum):
    FREE = "free"
    PAID = "paid"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one_time"


# Job types
JOB_TYPES = [
    "Full-time",
    "Part-time",
    "Contract",
    "Internship",
    "Freelance",
]

# Applications in these statuses free up quota
NON_COUNTABLE_APPLICATION_STATUSES = [
    ApplicationStatus.WITHDRAWN.value,
    ApplicationStatus.REJECTED.value,
]

# Statuses a company is allowed to see
COMPANY_VISIBLE_APPLICATION_STATUSES = [
    ApplicationStatus.REVIEWED.value,
    ApplicationStatus.HIRED.value,
    ApplicationStatus.REJECTED.value,
]

JOB_CLOSED_REJECTION_REASON = "Job posting has been closed"

# System config keys
CONFIG_FREE_TIER_MAX_APPLICATIONS = "free_tier_max_applications"
CONFIG_SUBSCRIPTION_GRACE_PERIOD_DAYS = "subscription_grace_period_days"

# Email notification types (used for per-user opt-out)
EMAIL_CHANNEL = "email"
EMAIL_TYPE_APPLICATION_SUBMITTED = "application_submitted"
EMAIL_TYPE_APPLICATION_APPROVED = "application_approved"
EMAIL_TYPE_APPLICATION_REJECTED = "application_rejected"
EMAIL_TYPE_APPLICATION_HIRED = "application_hired"
EMAIL_TYPE_COMPANY_APPROVED = "company_approved"
EMAIL_TYPE_COMPANY_REJECTED = "company_rejected"
EMAIL_TYPE_JOB_STATUS = "job_status"

EMAIL_TYPES = [
    EMAIL_TYPE_APPLICATION_SUBMITTED,
    EMAIL_TYPE_APPLICATION_APPROVED,
    EMAIL_TYPE_APPLICATION_REJECTED,
    EMAIL_TYPE_APPLICATION_HIRED,
    EMAIL_TYPE_COMPANY_APPROVED,
    EMAIL_TYPE_COMPANY_REJECTED,
    EMAIL_TYPE_JOB_STATUS,
]

APPLICATION_EMAIL_TYPE_MAP = {
    "submitted": EMAIL_TYPE_APPLICATION_SUBMITTED,
    "approved": EMAIL_TYPE_APPLICATION_APPROVED,
    "rejected": EMAIL_TYPE_APPLICATION_REJECTED,
    "hired": EMAIL_TYPE_APPLICATION_HIRED,
}
