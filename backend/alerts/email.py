"""
Email Delivery for alerts.

Fire-and-forget: a failed or unconfigured send returns False and never
touches alert state.
"""

from __future__ import annotations

from typing import Protocol

import sendgrid
import structlog
from sendgrid.helpers.mail import Mail

from core.config import Settings, get_settings

logger = structlog.get_logger()

PRIORITY_COLORS = {
    "high": "#dc3545",
    "medium": "#ffc107",
    "low": "#28a745",
}


class AlertNotifier(Protocol):
    async def notify(self, recipient: str, subject: str, title: str, body: str, priority: str) -> bool: ...

    async def notify_admins(self, title: str, body: str, priority: str = "high") -> int: ...


def render_alert_html(title: str, body: str, priority: str, app_name: str, dashboard_url: str) -> str:
    color = PRIORITY_COLORS.get(priority, PRIORITY_COLORS["medium"])
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background-color: {color}; color: white; padding: 20px; border-radius: 5px 5px 0 0;">
        <h2 style="margin: 0;">{app_name} Alert Notification</h2>
        <span style="font-size: 14px;">Priority: {priority.upper()}</span>
      </div>
      <div style="border: 1px solid #ddd; border-top: none; padding: 20px; border-radius: 0 0 5px 5px;">
        <h3>{title}</h3>
        <p style="line-height: 1.6;">{body}</p>
        <a href="{dashboard_url}">View in Dashboard</a>
        <hr style="border: none; border-top: 1px solid #eee; margin: 20px 0;">
        <p style="color: #666; font-size: 12px;">
          This is an automated notification from {app_name}.
        </p>
      </div>
    </div>
    """


class EmailNotifier:
    """SendGrid-backed notifier for high-priority alerts."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.sendgrid_api_key)

    async def notify(self, recipient: str, subject: str, title: str, body: str, priority: str) -> bool:
        """Send one alert email. Returns True if SendGrid accepted it."""
        if not self.enabled:
            logger.info("alerts.email.disabled", recipient=recipient)
            return False

        try:
            sg = sendgrid.SendGridAPIClient(api_key=self.settings.sendgrid_api_key)
            email = Mail(
                from_email=self.settings.alert_from_email,
                to_emails=recipient,
                subject=f"[{priority.upper()}] {subject}",
                html_content=render_alert_html(
                    title, body, priority, self.settings.app_name, self.settings.dashboard_url
                ),
            )
            response = sg.send(email)
            sent = response.status_code in (200, 201, 202)
        except Exception as exc:  # noqa: BLE001
            logger.warning("alerts.email.failed", recipient=recipient, error=str(exc))
            return False

        logger.info("alerts.email.sent", recipient=recipient, sent=sent)
        return sent

    async def notify_admins(self, title: str, body: str, priority: str = "high") -> int:
        """Send to every configured admin. Returns the number of successful sends."""
        recipients = [email.strip() for email in self.settings.admin_emails if email.strip()]
        if not recipients:
            logger.info("alerts.email.no_admins", title=title)
            return 0

        subject = "Critical Alert: Action Required" if priority == "high" else title
        sent = 0
        for recipient in recipients:
            if await self.notify(recipient, subject, title, body, priority):
                sent += 1

        logger.info("alerts.email.admins_notified", sent=sent, total=len(recipients))
        return sent
