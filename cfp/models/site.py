"""Site-wide settings (single row)"""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from cfp.core.database import Base

SITE_SETTINGS_ID = 1


class SiteSettings(Base):
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, default=SITE_SETTINGS_ID)
    name = Column(String(200), nullable=False, default="CFP System")
    description = Column(Text, nullable=True)
    website_url = Column(String(500), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "name": self.name,
            "description": self.description,
            "website_url": self.website_url,
        }
