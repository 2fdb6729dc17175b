"""
Email Service using Resend

Handles sending the emails of the authentication flow: one-time codes and
password reset links.
"""

import asyncio
import logging
from html import escape

import resend

from daanbantayan.core.config import settings
from daanbantayan.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key

OTP_EMAIL_SUBJECT = "Your OTP Code"
PASSWORD_RESET_SUBJECT = "Reset your Daanbantayan Portal password"

_STYLE = """
        <style>
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1a365d; margin-bottom: 24px; }
            .code { font-size: 32px; letter-spacing: 8px; font-weight: bold; color: #1a365d; margin: 24px 0; }
            .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
        </style>
"""


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> None:
    """
    Send an email using Resend.

    When no API key is configured the message is logged instead of sent.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Raises:
        EmailDeliveryError: If the provider call fails
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        raise EmailDeliveryError(to_email) from e


def render_otp_email(code: str, expires_in_minutes: int) -> str:
    """Build the HTML body of the one-time code email."""
    safe_code = escape(code)
    return f"""
    <!DOCTYPE html>
    <html>
    <head>{_STYLE}</head>
    <body>
        <div class="container">
            <h1 class="header">Your OTP Code</h1>

            <p>Your one-time verification code is:</p>

            <p class="code">{safe_code}</p>

            <p><strong>This code will expire in {expires_in_minutes} minutes.</strong></p>

            <div class="footer">
                <p>If you didn't request this code, you can safely ignore this email.</p>
                <p>Daanbantayan School Portal</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_otp_email(to_email: str, code: str, expires_in_minutes: int) -> None:
    """Send a one-time code. The stated expiry must match the code cache TTL."""
    await send_email(
        to_email=to_email,
        subject=OTP_EMAIL_SUBJECT,
        html_content=render_otp_email(code, expires_in_minutes),
    )


async def send_password_reset_email(
    to_email: str,
    token: str,
    expires_in_minutes: int,
) -> None:
    """Send a password reset link pointing at the frontend reset page."""
    reset_url = f"{settings.frontend_url}/reset-password?token={token}"
    safe_email = escape(to_email)
    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>{_STYLE}</head>
    <body>
        <div class="container">
            <h1 class="header">Reset Your Password</h1>

            <p>We received a request to reset the password for <strong>{safe_email}</strong>.</p>

            <p>Click the button below to choose a new password:</p>

            <a href="{reset_url}" class="button">Reset Password</a>

            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #3b82f6;">{reset_url}</p>

            <p><strong>This link expires in {expires_in_minutes} minutes.</strong></p>

            <div class="footer">
                <p>If you didn't request a password reset, you can safely ignore this email.</p>
                <p>Daanbantayan School Portal</p>
            </div>
        </div>
    </body>
    </html>
    """
    await send_email(
        to_email=to_email,
        subject=PASSWORD_RESET_SUBJECT,
        html_content=html_content,
    )
