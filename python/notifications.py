"""
Approval notification dispatch.

Emails go out through the Mailjet v3.1 send API after the approving
transaction has committed. Delivery runs on a small thread pool; the HTTP
response never waits for it, and a delivery failure is logged and dropped.

Usage:
    dispatcher = create_dispatcher(config.notifications)
    dispatcher.dispatch_approval(notice)
    ...
    dispatcher.shutdown()
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from jinja2 import Template

from config_manager import NotificationConfig
from errors import DependencyFailure
from security_logger import sanitize_for_logging

logger = logging.getLogger(__name__)


@dataclass
class ApprovalNotice:
    """Everything the approval email needs; built after commit."""
    application_id: str
    full_name: str
    email: Optional[str]
    company_name: str = ""
    distributor_area: str = ""
    business_type: str = ""
    review_notes: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    categories: List[str] = field(default_factory=list)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @classmethod
    def from_status_change(cls, result) -> 'ApprovalNotice':
        """Build from database.application_service.StatusChangeResult.

        Credentials are included only when this approval created the account.
        """
        application = result.application
        notice = cls(
            application_id=str(application.id),
            full_name=application.full_name,
            email=application.email,
            company_name=application.company_name or "",
            distributor_area=application.desired_distributor_area or "",
            business_type=application.business_type or "",
            review_notes=application.review_notes,
        )
        if result.credentials_issued:
            account = result.provisioning.user
            notice.username = account.username
            notice.password = result.provisioning.password
        return notice


@dataclass
class EmailMessage:
    to_email: str
    to_name: str
    subject: str
    html: str
    text: str


APPROVED_SUBJECT = "Your distributor application has been approved"

APPROVED_HTML = Template("""
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{{ subject }}</title></head>
<body style="font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #2e7d32;">Congratulations, {{ notice.full_name }}!</h2>
    <p>Your application to become a distributor
    {%- if notice.company_name %} for <strong>{{ notice.company_name }}</strong>{% endif %}
    has been approved.</p>
    <table style="border-collapse: collapse;">
        {% if notice.distributor_area %}<tr><td><strong>Distribution area:</strong></td><td>{{ notice.distributor_area }}</td></tr>{% endif %}
        {% if notice.business_type %}<tr><td><strong>Business type:</strong></td><td>{{ notice.business_type }}</td></tr>{% endif %}
    </table>
    {% if notice.review_notes %}<p><em>Reviewer notes:</em> {{ notice.review_notes }}</p>{% endif %}
    {% if notice.has_credentials %}
    <h3>Your login credentials</h3>
    <p>Username: <code>{{ notice.username }}</code><br>
       Password: <code>{{ notice.password }}</code></p>
    {% if notice.categories %}<p>Assigned categories: {{ notice.categories | join(", ") }}</p>{% endif %}
    <p>Sign in at <a href="{{ login_url }}">{{ login_url }}</a> and change your password after the first login.</p>
    {% else %}
    <p>Your login details will be shared with you separately by our sales team.</p>
    {% endif %}
    <p>Application reference: {{ notice.application_id }}</p>
</body>
</html>
""", autoescape=True)

APPROVED_TEXT = Template("""Congratulations, {{ notice.full_name }}!

Your distributor application{% if notice.company_name %} for {{ notice.company_name }}{% endif %} has been approved.
{% if notice.distributor_area %}Distribution area: {{ notice.distributor_area }}
{% endif %}{% if notice.review_notes %}Reviewer notes: {{ notice.review_notes }}
{% endif %}
{% if notice.has_credentials -%}
Username: {{ notice.username }}
Password: {{ notice.password }}
Sign in at {{ login_url }} and change your password after the first login.
{%- else -%}
Your login details will be shared with you separately by our sales team.
{%- endif %}

Application reference: {{ notice.application_id }}
""")


def render_approval_email(notice: ApprovalNotice, login_url: str) -> EmailMessage:
    """Render the approval email for a notice that has a recipient."""
    return EmailMessage(
        to_email=notice.email,
        to_name=notice.full_name or "Distributor",
        subject=APPROVED_SUBJECT,
        html=APPROVED_HTML.render(notice=notice, subject=APPROVED_SUBJECT, login_url=login_url),
        text=APPROVED_TEXT.render(notice=notice, login_url=login_url),
    )


# ============================================
# SENDERS
# ============================================

class MailjetEmailSender:
    """Sends mail through the Mailjet v3.1 send endpoint."""

    def __init__(self, config: NotificationConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._http = session or requests.Session()

    def send(self, message: EmailMessage) -> None:
        """
        Raises:
            DependencyFailure: Transport error or non-2xx response
        """
        payload = {
            "Messages": [{
                "From": {"Email": self.config.from_email, "Name": self.config.from_name},
                "To": [{"Email": message.to_email, "Name": message.to_name}],
                "Subject": message.subject,
                "HTMLPart": message.html,
                "TextPart": message.text,
            }]
        }
        try:
            response = self._http.post(
                self.config.api_url,
                json=payload,
                auth=(self.config.mailjet_api_key, self.config.mailjet_secret_key),
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DependencyFailure(f"Mailjet send failed: {e}", code="EMAIL_DELIVERY_FAILED") from e

        logger.info("Email sent via Mailjet: to=%s subject=%s",
                    sanitize_for_logging(message.to_email), message.subject)


class LoggingEmailSender:
    """Stand-in when Mailjet credentials are absent: logs and sends nothing."""

    def send(self, message: EmailMessage) -> None:
        logger.warning("Email not sent - Mailjet not configured: to=%s subject=%s",
                       sanitize_for_logging(message.to_email), message.subject)


# ============================================
# DISPATCHER
# ============================================

class NotificationDispatcher:
    """Fire-and-forget delivery of approval notices on a thread pool."""

    def __init__(self, sender, config: Optional[NotificationConfig] = None):
        self.config = config or NotificationConfig()
        self.sender = sender
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="notify"
        )

    def dispatch_approval(self, notice: ApprovalNotice) -> Optional[Future]:
        """
        Queue an approval email.

        Returns:
            The delivery future, or None when nothing was queued
        """
        if not self.config.enabled:
            logger.info("Notifications disabled, skipping approval email: application=%s",
                        notice.application_id)
            return None
        if not notice.email:
            logger.info("No recipient email, skipping approval email: application=%s",
                        notice.application_id)
            return None

        return self._executor.submit(self._deliver, notice)

    def _deliver(self, notice: ApprovalNotice) -> bool:
        try:
            message = render_approval_email(notice, self.config.login_url)
            self.sender.send(message)
            return True
        except DependencyFailure as e:
            logger.error("Approval email failed: application=%s error=%s",
                         notice.application_id, sanitize_for_logging(e.message))
        except Exception:
            # runs detached from any request; nothing upstream can handle it
            logger.exception("Unexpected error sending approval email: application=%s",
                             notice.application_id)
        return False

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("Notification dispatcher stopped")


def create_dispatcher(config: NotificationConfig) -> NotificationDispatcher:
    """Pick the Mailjet sender when credentials are configured."""
    if config.is_configured:
        sender = MailjetEmailSender(config)
        logger.info("Mailjet email sender initialized")
    else:
        sender = LoggingEmailSender()
        logger.warning("Mailjet credentials missing - approval emails will only be logged")
    return NotificationDispatcher(sender, config)
