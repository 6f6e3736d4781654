"""System configuration key/value model."""

from sqlalchemy import JSON, Column, String, Text

from placement.db.base import Base


class SystemConfig(Base):
    """Runtime-tunable configuration value."""

    __tablename__ = "system_configs"

    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(JSON, nullable=False)
    description = Column(Text)

    def __repr__(self):
        return f"<SystemConfig {self.key}={self.value!r}>"
