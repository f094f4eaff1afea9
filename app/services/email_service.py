import html
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from app.core.config import settings

logger = logging.getLogger(__name__)


def _send_via_sendgrid(to_email: str, subject: str, html_content: str) -> bool:
    """Send via SendGrid API."""
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Mail

    message = Mail(
        from_email=settings.from_email,
        to_emails=to_email,
        subject=subject,
        html_content=html_content,
    )
    response = SendGridAPIClient(settings.sendgrid_api_key).send(message)
    logger.info(f"Email sent via SendGrid to {to_email} | status={response.status_code}")
    return True


def _send_via_smtp(to_email: str, subject: str, html_content: str) -> bool:
    """Send via SMTP with STARTTLS."""
    msg = MIMEMultipart("alternative")
    msg["From"] = settings.smtp_user
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(html_content, "html"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        server.starttls()
        server.login(settings.smtp_user, settings.smtp_password)
        server.send_message(msg)

    logger.info(f"Email sent via SMTP to {to_email} | subject={subject}")
    return True


def send_email_sync(to_email: str, subject: str, html_content: str) -> bool:
    """Send an email. Uses SendGrid if configured, otherwise SMTP. Returns False on any failure."""
    try:
        if settings.sendgrid_api_key:
            return _send_via_sendgrid(to_email, subject, html_content)
        elif settings.smtp_user and settings.smtp_password:
            return _send_via_smtp(to_email, subject, html_content)
        else:
            logger.warning("No email provider configured (set SENDGRID_API_KEY or SMTP_USER+SMTP_PASSWORD)")
            return False
    except Exception as e:
        logger.error(f"Failed to send email to {to_email} | error={e}")
        return False


def render_email(heading: str, body: str, recipient_name: str, link: str | None = None) -> str:
    """Minimal HTML email; body is plain text and gets escaped."""
    body_html = html.escape(body).replace("\n", "<br>\n")
    link_html = f'<p><a href="{html.escape(link)}">Open {html.escape(settings.app_name)}</a></p>' if link else ""
    return (
        f"<h2>{html.escape(heading)}</h2>"
        f"<p>Hi {html.escape(recipient_name)},</p>"
        f"<p>{body_html}</p>"
        f"{link_html}"
    )
