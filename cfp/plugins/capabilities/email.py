"""Outgoing email for plugins."""

from cfp.plugins.capabilities.base import Capability


class EmailCapability(Capability):

    def send(self, to: str, subject: str, body: str) -> bool:
        self._require("email:send")
        # imported here: the email service dispatches hooks, which need the registry
        from cfp.services.email_service import email_service

        with self._session() as db:
            sent = email_service.send(db, to=to, subject=subject, body=body)
        self._ctx.logger.info("Sent email", {"to": to, "subject": subject, "sent": sent})
        return sent
