import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape

from billing.core.config import settings

logger = logging.getLogger(__name__)


def render_notification_html(title: str, message: str) -> str:
    return f"""
    <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #eee;">
                <h2 style="color: #1e3a8a; text-align: center;">{escape(settings.PROJECT_NAME)}</h2>
                <h3>{escape(title)}</h3>
                <p>{escape(message)}</p>
                <hr style="border: 0; border-top: 1px solid #eee; margin: 20px 0;" />
                <p style="font-size: 12px; color: #777; text-align: center;">
                    This is an automated billing notice from {escape(settings.PROJECT_NAME)}.
                </p>
            </div>
        </body>
    </html>
    """


def send_email(email_to: str, subject: str, html_content: str) -> None:
    """Deliver one HTML email. Raises on SMTP failure so the caller can retry."""
    if not settings.SMTP_HOST:
        raise RuntimeError("SMTP_HOST is not configured")

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"{settings.EMAILS_FROM_NAME or settings.PROJECT_NAME} <{settings.EMAILS_FROM_EMAIL}>"
    message["To"] = email_to
    message.attach(MIMEText(html_content, "html"))

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        if settings.SMTP_TLS:
            server.starttls()
        if settings.SMTP_USER:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.sendmail(settings.EMAILS_FROM_EMAIL, email_to, message.as_string())
    logger.info("Sent '%s' to %s", subject, email_to)
