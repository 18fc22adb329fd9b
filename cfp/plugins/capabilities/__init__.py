"""Permission-gated data access handed to plugins through their context."""

from cfp.plugins.capabilities.submissions import SubmissionCapability
from cfp.plugins.capabilities.users import UserCapability
from cfp.plugins.capabilities.events import EventCapability
from cfp.plugins.capabilities.reviews import ReviewCapability
from cfp.plugins.capabilities.data import DataCapability
from cfp.plugins.capabilities.email import EmailCapability

__all__ = [
    "SubmissionCapability", "UserCapability", "EventCapability",
    "ReviewCapability", "DataCapability", "EmailCapability",
]
