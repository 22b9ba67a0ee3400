"""SendGrid email notifications for marketplace events.

Uses asyncio.to_thread to wrap the synchronous SendGrid client. Every public
method returns a bool and never raises: a failed notification must not undo
the state change that triggered it.
"""

import asyncio
import html
import logging

import sendgrid
from sendgrid.helpers.mail import Content, Email, Mail, To

from findermeister.app.config import get_settings

logger = logging.getLogger(__name__)


def _format_currency(value) -> str:
    """Format a number as $X,XXX.XX."""
    try:
        return f"${float(value):,.2f}"
    except (ValueError, TypeError):
        return "$0.00"


def _build_html(heading: str, paragraphs: list[str], cta_label: str, cta_url: str) -> str:
    body = "".join(
        f'<p style="font-size: 15px; color: #4b5563; line-height: 1.6;">{p}</p>'
        for p in paragraphs
    )
    return f"""
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"></head>
<body style="margin: 0; padding: 20px; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background-color: #f3f4f6;">
    <table width="600" cellpadding="0" cellspacing="0" style="background: #fff; border-radius: 8px; padding: 32px; margin: 0 auto;">
        <tr>
            <td>
                <h2 style="color: #1e3a8a; margin-top: 0;">{heading}</h2>
                {body}
                <p style="text-align: center; padding-top: 12px;">
                    <a href="{cta_url}" style="display: inline-block; background-color: #1e40af; color: #ffffff; font-size: 16px; font-weight: 700; text-decoration: none; padding: 12px 32px; border-radius: 8px;">{cta_label}</a>
                </p>
                <p style="font-size: 12px; color: #9ca3af; padding-top: 24px;">&copy; FinderMeister</p>
            </td>
        </tr>
    </table>
</body>
</html>
"""


class EmailService:
    """Notification sender. Construct once per app and inject into services."""

    def __init__(self, api_key: str, from_email: str, frontend_url: str):
        self.api_key = api_key
        self.from_email = from_email
        self.frontend_url = frontend_url.rstrip("/")

    def _send_mail(self, mail: Mail) -> bool:
        """Synchronous send via SendGrid. Returns True on success."""
        client = sendgrid.SendGridAPIClient(api_key=self.api_key)
        response = client.send(mail)
        if response.status_code in (200, 201, 202):
            return True
        logger.error(
            "SendGrid returned status %s: %s",
            response.status_code,
            response.body,
        )
        return False

    async def send(self, to_email: str, subject: str, html_body: str) -> bool:
        if not self.api_key:
            logger.warning("SENDGRID_API_KEY not set, skipping email '%s' to %s", subject, to_email)
            return False
        mail = Mail(
            from_email=Email(self.from_email, "FinderMeister"),
            to_emails=To(to_email),
            subject=subject,
            html_content=Content("text/html", html_body),
        )
        try:
            sent = await asyncio.to_thread(self._send_mail, mail)
        except Exception:
            logger.exception("Failed to send email '%s' to %s", subject, to_email)
            return False
        if sent:
            logger.info("Email '%s' sent to %s", subject, to_email)
        return sent

    # ------------------------------------------------------------------
    # Client notifications
    # ------------------------------------------------------------------

    async def notify_client_new_proposal(
        self, client_email: str, finder_name: str, find_title: str, price
    ) -> bool:
        body = _build_html(
            "New Proposal Received",
            [
                f"<strong>{html.escape(finder_name)}</strong> submitted a proposal on "
                f"&ldquo;{html.escape(find_title)}&rdquo;.",
                f"Proposed price: <strong>{_format_currency(price)}</strong>",
            ],
            "Review Proposal",
            f"{self.frontend_url}/client/dashboard",
        )
        return await self.send(client_email, "New Proposal Received - FinderMeister", body)

    async def notify_client_order_submission(
        self, client_email: str, finder_name: str, find_title: str
    ) -> bool:
        body = _build_html(
            "Work Submitted for Review",
            [
                f"<strong>{html.escape(finder_name)}</strong> delivered work for "
                f"&ldquo;{html.escape(find_title)}&rdquo;.",
                "Payment is released automatically if you take no action within 5 days.",
            ],
            "Review Submission",
            f"{self.frontend_url}/client/contracts",
        )
        return await self.send(client_email, "Work Submitted for Review - FinderMeister", body)

    # ------------------------------------------------------------------
    # Finder notifications
    # ------------------------------------------------------------------

    async def notify_finder_hired(
        self, finder_email: str, client_name: str, find_title: str, amount
    ) -> bool:
        body = _build_html(
            "You've been hired!",
            [
                f"<strong>{html.escape(client_name)}</strong> accepted your proposal for "
                f"&ldquo;{html.escape(find_title)}&rdquo;.",
                f"Contract amount held in escrow: <strong>{_format_currency(amount)}</strong>",
            ],
            "View Contract",
            f"{self.frontend_url}/finder/contracts",
        )
        return await self.send(
            finder_email, "Congratulations! You've been hired - FinderMeister", body
        )

    async def notify_finder_submission_approved(
        self, finder_email: str, client_name: str, find_title: str, amount
    ) -> bool:
        body = _build_html(
            "Work Approved",
            [
                f"<strong>{html.escape(client_name)}</strong> approved your work on "
                f"&ldquo;{html.escape(find_title)}&rdquo;.",
                f"{_format_currency(amount)} will be released to your balance.",
            ],
            "View Earnings",
            f"{self.frontend_url}/finder/dashboard",
        )
        return await self.send(
            finder_email, "Work Approved - Payment Released - FinderMeister", body
        )

    async def notify_finder_submission_rejected(
        self, finder_email: str, client_name: str, find_title: str, feedback: str | None
    ) -> bool:
        body = _build_html(
            "Revision Requested",
            [
                f"<strong>{html.escape(client_name)}</strong> asked for changes on "
                f"&ldquo;{html.escape(find_title)}&rdquo;.",
                f"Feedback: {html.escape(feedback or 'No feedback provided')}",
            ],
            "Resubmit Work",
            f"{self.frontend_url}/finder/contracts",
        )
        return await self.send(finder_email, "Work Revision Requested - FinderMeister", body)

    async def notify_finder_payment_released(
        self, finder_email: str, find_title: str, amount
    ) -> bool:
        body = _build_html(
            "Payment Released",
            [
                f"{_format_currency(amount)} for &ldquo;{html.escape(find_title)}&rdquo; "
                "is now in your available balance.",
            ],
            "View Earnings",
            f"{self.frontend_url}/finder/dashboard",
        )
        return await self.send(finder_email, "Payment Released - FinderMeister", body)

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    async def notify_strike_issued(
        self, user_email: str, level: int, offense: str, consequence: str
    ) -> bool:
        body = _build_html(
            f"Account Notice: Strike Level {level}",
            [
                f"A strike was recorded on your account for: {html.escape(offense)}.",
                f"Consequence: <strong>{html.escape(consequence)}</strong>",
                "You may appeal this decision from your account within 90 days.",
            ],
            "View Account Status",
            f"{self.frontend_url}/account",
        )
        return await self.send(user_email, "Account Strike Notice - FinderMeister", body)


def get_email_service() -> EmailService:
    """FastAPI dependency: an EmailService configured from settings."""
    s = get_settings()
    return EmailService(s.sendgrid_api_key, s.email_from, s.frontend_url)
