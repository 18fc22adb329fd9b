"""Database models"""

from cfp.models.user import User, UserInvitation
from cfp.models.site import SiteSettings
from cfp.models.event import Event, EventTrack, EventFormat, ReviewTeamMember
from cfp.models.submission import Submission
from cfp.models.review import Review
from cfp.models.audit import ActivityLog
from cfp.models.plugin import Plugin, PluginLog, PluginJob, PluginData
from cfp.models.federation import WebhookQueue

__all__ = [
    "User", "UserInvitation", "SiteSettings",
    "Event", "EventTrack", "EventFormat", "ReviewTeamMember",
    "Submission", "Review", "ActivityLog",
    "Plugin", "PluginLog", "PluginJob", "PluginData",
    "WebhookQueue",
]
