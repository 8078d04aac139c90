"""Email service for Diamond Tier Capital using SendGrid."""

import httpx

from diamondtier.logging_config import get_logger
from diamondtier.settings import settings

logger = get_logger(__name__)

_STYLE = """
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .logo { font-size: 22px; font-weight: bold; color: #0f172a; text-align: center; margin-bottom: 30px; }
    .button { display: inline-block; background-color: #b8860b; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; margin: 20px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #eee; font-size: 12px; color: #6b7280; }
"""


def _wrap_html(body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="utf-8"><style>{_STYLE}</style></head>
    <body>
        <div class="container">
            <div class="logo">Diamond Tier Capital</div>
            {body}
            <div class="footer"><p>&copy; Diamond Tier Capital</p></div>
        </div>
    </body>
    </html>
    """


class EmailService:
    """Email service using SendGrid API.

    Handles transactional emails:
    - Password reset (admins and affiliates)
    - Affiliate registration received
    """

    SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self):
        self.api_key = settings.sendgrid_api_key
        self.from_email = settings.sendgrid_from_email
        self.from_name = settings.sendgrid_from_name
        self.enabled = bool(self.api_key)

        if not self.enabled:
            logger.warning("email_service_disabled", reason="SENDGRID_API_KEY not set")

    async def _send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send an email via SendGrid API.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.warning("email_not_sent", reason="service_disabled", to=to_email)
            return False

        payload = {
            "personalizations": [{"to": [{"email": to_email}], "subject": subject}],
            "from": {"email": self.from_email, "name": self.from_name},
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.SENDGRID_API_URL,
                    json=payload,
                    headers=headers,
                    timeout=30.0,
                )
        except httpx.RequestError as e:
            logger.error("email_send_error", to=to_email, error=str(e))
            return False

        if response.status_code in (200, 201, 202):
            logger.info("email_sent", to=to_email, subject=subject)
            return True

        logger.error(
            "email_send_failed",
            to=to_email,
            status=response.status_code,
            body=response.text[:200],
        )
        return False

    async def send_password_reset_email(
        self,
        to_email: str,
        name: str | None,
        reset_token: str,
        portal: str = "admin",
    ) -> bool:
        """Send a password reset link.

        Args:
            to_email: Account email
            name: Display name (optional)
            reset_token: Signed reset token
            portal: "admin" or "affiliate", selects the reset page
        """
        path = "/affiliate/reset-password" if portal == "affiliate" else "/admin/reset-password"
        reset_url = f"{settings.site_url}{path}?token={reset_token}"
        greeting = f"Hello{' ' + name if name else ''},"

        html_content = _wrap_html(f"""
            <p>{greeting}</p>
            <p>We received a request to reset your password. The link below is valid for one hour.</p>
            <p style="text-align: center;"><a href="{reset_url}" class="button">Reset password</a></p>
            <p>If you did not request this, you can ignore this email.</p>
        """)
        text_content = (
            f"{greeting}\n\n"
            "We received a request to reset your password. The link below is valid for one hour.\n\n"
            f"{reset_url}\n\n"
            "If you did not request this, you can ignore this email.\n"
        )

        return await self._send_email(to_email, "Reset your password - Diamond Tier Capital", html_content, text_content)

    async def send_affiliate_registration_email(
        self,
        to_email: str,
        name: str | None,
        referral_code: str,
    ) -> bool:
        referral_link = f"{settings.site_url}/?ref={referral_code}"
        greeting = f"Hello{' ' + name if name else ''},"

        html_content = _wrap_html(f"""
            <p>{greeting}</p>
            <p>Thank you for applying to the Diamond Tier Capital affiliate program.
            Our team will review your registration shortly.</p>
            <p>Your referral link, active once approved:<br><strong>{referral_link}</strong></p>
        """)
        text_content = (
            f"{greeting}\n\n"
            "Thank you for applying to the Diamond Tier Capital affiliate program. "
            "Our team will review your registration shortly.\n\n"
            f"Your referral link, active once approved: {referral_link}\n"
        )

        return await self._send_email(
            to_email, "Affiliate registration received - Diamond Tier Capital", html_content, text_content
        )


# Singleton instance
email_service = EmailService()
