"""Database models."""

# Base models (no foreign keys)
from placement.models.user import User
from placement.models.subscription import Plan
from placement.models.system_config import SystemConfig

# Models with foreign keys to base models
from placement.models.company import Company
from placement.models.student import Student
from placement.models.job import JobPosting

# Models with foreign keys to other models
from placement.models.subscription import Subscription
from placement.models.application import Application
from placement.models.notification import EffectDelivery, Notification, NotificationPreference

# Export all models
__all__ = [
    "User",
    "Plan",
    "SystemConfig",
    "Company",
    "Student",
    "JobPosting",
    "Subscription",
    "Application",
    "Notification",
    "NotificationPreference",
    "EffectDelivery",
]
