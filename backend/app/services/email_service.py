"""
Email Service for the E-Waste Marketplace
=========================================
Transactional emails sent over SMTP:
- Email verification on signup
- Password reset
- KYC review decisions
- New repair quotes

Sending never breaks the calling request: failures are logged and
reported as False.
"""

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
from datetime import datetime

from app.core.config import settings
from app.core.logging_config import logger


class EmailService:
    """Async SMTP email service"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.start_tls = settings.SMTP_START_TLS
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email asynchronously.

        Returns True if successful, False otherwise.
        """
        if not self.is_configured:
            logger.warning(f"[Email] SMTP not configured, skipping '{subject}' to {to_email}")
            return False

        message = MIMEMultipart("alternative")
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to_email
        message["Subject"] = subject
        if text_content:
            message.attach(MIMEText(text_content, "plain"))
        message.attach(MIMEText(html_content, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=self.start_tls
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"[Email] Failed to send '{subject}' to {to_email}: {e}")
            return False

        logger.info(f"[Email] Sent '{subject}' to {to_email}")
        return True

    def _render(self, title: str, user_name: Optional[str], body_html: str,
                link: Optional[str] = None, link_label: Optional[str] = None) -> str:
        button = ""
        if link:
            button = f"""
                    <p style="text-align: center;">
                        <a href="{link}" class="button">{link_label}</a>
                    </p>
                    <p style="font-size: 14px; color: #6b7280;">
                        Or copy and paste this link in your browser:<br>
                        <code style="word-break: break-all;">{link}</code>
                    </p>"""
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <style>
                body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background: #2f855a; color: white; padding: 24px; text-align: center; border-radius: 10px 10px 0 0; }}
                .content {{ background: #f9fafb; padding: 30px; border-radius: 0 0 10px 10px; }}
                .button {{ display: inline-block; background: #2f855a; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; font-weight: 600; margin: 20px 0; }}
                .footer {{ text-align: center; margin-top: 30px; font-size: 12px; color: #6b7280; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header"><h1>{title}</h1></div>
                <div class="content">
                    <p>Hi {user_name or 'there'},</p>
                    {body_html}{button}
                </div>
                <div class="footer">
                    <p>&copy; {datetime.utcnow().year} {self.from_name}</p>
                </div>
            </div>
        </body>
        </html>
        """

    async def send_verification_email(
        self,
        to_email: str,
        user_name: str,
        verification_token: str,
        portal: str = "buyer"
    ) -> bool:
        """Send email verification link to a newly registered user"""
        link = settings.email_verification_url(verification_token, portal)
        hours = settings.EMAIL_VERIFICATION_EXPIRE_HOURS

        html_content = self._render(
            "Verify your email",
            user_name,
            f"<p>Thanks for joining {self.from_name}. Please verify your email address to activate "
            f"your account.</p><p>This link will expire in {hours} hours.</p>",
            link,
            "Verify Email Address",
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f"Please verify your email address by opening the link below:\n\n{link}\n\n"
            f"This link will expire in {hours} hours.\n"
        )
        return await self.send_email(to_email, f"Verify your email - {self.from_name}", html_content, text_content)

    async def send_password_reset_email(
        self,
        to_email: str,
        user_name: str,
        reset_token: str,
        portal: str = "buyer"
    ) -> bool:
        """Send password reset link"""
        link = settings.password_reset_url(reset_token, portal)
        hours = settings.PASSWORD_RESET_EXPIRE_HOURS

        html_content = self._render(
            "Password Reset Request",
            user_name,
            "<p>We received a request to reset your password. If you didn't ask for this, "
            f"ignore this email and your password will remain unchanged.</p>"
            f"<p>This link will expire in {hours} hour(s).</p>",
            link,
            "Reset Password",
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f"Reset your password using the link below:\n\n{link}\n\n"
            f"This link will expire in {hours} hour(s).\n"
        )
        return await self.send_email(to_email, f"Reset your password - {self.from_name}", html_content, text_content)

    async def send_kyc_decision_email(
        self,
        to_email: str,
        user_name: str,
        approved: bool,
        reason: Optional[str] = None
    ) -> bool:
        """Tell a seller or repair center the outcome of their business verification"""
        if approved:
            title = "Business verification approved"
            body = "<p>Your business verification has been approved. You now have full access to the platform.</p>"
        else:
            title = "Business verification rejected"
            body = (
                "<p>Unfortunately your business verification was rejected.</p>"
                f"<p><strong>Reason:</strong> {reason or 'not specified'}</p>"
                "<p>You can correct the details and submit again.</p>"
            )
        return await self.send_email(to_email, f"{title} - {self.from_name}", self._render(title, user_name, body))

    async def send_quote_email(
        self,
        to_email: str,
        user_name: str,
        device: str,
        total_cost: str,
        valid_until: datetime
    ) -> bool:
        """Notify a buyer that a repair center has quoted their repair request"""
        body = (
            f"<p>You have a new repair quote for your <strong>{device}</strong>.</p>"
            f"<p>Total: <strong>{total_cost}</strong><br>"
            f"Valid until: {valid_until.strftime('%Y-%m-%d %H:%M')} UTC</p>"
            "<p>Log in to accept or decline it.</p>"
        )
        return await self.send_email(
            to_email, f"New repair quote - {self.from_name}", self._render("New repair quote", user_name, body)
        )


# Singleton instance
email_service = EmailService()
