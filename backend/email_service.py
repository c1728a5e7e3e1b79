"""
Email Service for FireLog
Sends transactional emails (password recovery, welcome) via SMTP
"""

import smtplib
import os
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
from urllib.parse import quote
import logging

logger = logging.getLogger(__name__)

# Email configuration - load from environment variables
SMTP_SERVER = os.getenv("SMTP_SERVER", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
FROM_EMAIL = os.getenv("FROM_EMAIL", "noreply@firelog.pl")
SITE_URL = os.getenv("FIRELOG_SITE_URL", "http://localhost:4321").rstrip("/")


def build_site_url(path: str) -> str:
    """Absolute URL on the FireLog site"""
    return f"{SITE_URL}{path}"


def _send_email(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    from_name: str = "FireLog"
) -> bool:
    """
    Send an email via SMTP

    Args:
        to_email: Recipient email address
        subject: Email subject
        html_body: HTML content of the email
        text_body: Plain text fallback (optional)
        from_name: Display name for the sender

    Returns:
        True if sent successfully, False otherwise
    """
    if not SMTP_PASSWORD:
        logger.error("SMTP_PASSWORD not configured - cannot send email")
        return False

    try:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{from_name} <{FROM_EMAIL}>"
        msg["To"] = to_email

        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(SMTP_SERVER, SMTP_PORT) as server:
            server.starttls()
            server.login(SMTP_USERNAME or FROM_EMAIL, SMTP_PASSWORD)
            server.sendmail(FROM_EMAIL, to_email, msg.as_string())

        logger.info(f"Email sent successfully to {to_email}: {subject}")
        return True

    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"SMTP authentication failed: {e}")
        return False
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP error sending email: {e}")
        return False


_STYLE = """
        body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
        .container { max-width: 600px; margin: 0 auto; padding: 20px; }
        .header { border-bottom: 3px solid #dc2626; padding-bottom: 15px; margin-bottom: 20px; }
        .button {
            display: inline-block;
            padding: 12px 24px;
            background-color: #dc2626;
            color: white !important;
            text-decoration: none;
            border-radius: 6px;
            margin: 20px 0;
        }
        .footer { margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee; font-size: 12px; color: #666; }
        .link-text { word-break: break-all; color: #666; font-size: 12px; }
"""


def send_password_reset(to_email: str, reset_token: str, user_name: str = "") -> bool:
    """
    Send password reset email

    Args:
        to_email: User's email address
        reset_token: Recovery token from AuthClient
        user_name: User's name for personalization
    """
    reset_link = build_site_url(f"/reset-password?token={quote(reset_token)}")
    greeting = f"Cześć {user_name}," if user_name else "Cześć,"
    subject = "Reset hasła - FireLog"

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h2 style="margin: 0; color: #dc2626;">FireLog</h2>
            </div>
            <p>{greeting}</p>
            <p>Otrzymaliśmy prośbę o zresetowanie hasła. Kliknij przycisk poniżej, aby ustawić nowe hasło:</p>
            <p><a href="{reset_link}" class="button">Ustaw nowe hasło</a></p>
            <p>Link wygaśnie po 1 godzinie.</p>
            <p>Jeśli to nie Ty prosiłeś o reset hasła, zignoruj tę wiadomość.</p>
            <p class="link-text">Lub skopiuj ten link: {reset_link}</p>
            <div class="footer">
                <p>FireLog - meldunki dla jednostek OSP</p>
            </div>
        </div>
    </body>
    </html>
    """

    text_body = f"""
FireLog

{greeting}

Otrzymaliśmy prośbę o zresetowanie hasła.
Kliknij poniższy link, aby ustawić nowe hasło:

{reset_link}

Link wygaśnie po 1 godzinie.

Jeśli to nie Ty prosiłeś o reset hasła, zignoruj tę wiadomość.

--
FireLog - meldunki dla jednostek OSP
    """

    return _send_email(to_email, subject, html_body, text_body)


def send_welcome(to_email: str, department_name: str, user_name: str = "") -> bool:
    """Sent after registration"""
    login_link = build_site_url("/login")
    greeting = f"Cześć {user_name}," if user_name else "Cześć,"
    subject = f"Witamy w FireLog - {department_name}"

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h2 style="margin: 0; color: #dc2626;">{department_name}</h2>
            </div>
            <p>{greeting}</p>
            <p>Twoje konto w FireLog zostało utworzone. Możesz już dodawać meldunki swojej jednostki.</p>
            <p><a href="{login_link}" class="button">Zaloguj się</a></p>
            <div class="footer">
                <p>FireLog - meldunki dla jednostek OSP</p>
            </div>
        </div>
    </body>
    </html>
    """

    text_body = f"""
{department_name}

{greeting}

Twoje konto w FireLog zostało utworzone. Możesz już dodawać meldunki swojej jednostki.

Zaloguj się: {login_link}

--
FireLog - meldunki dla jednostek OSP
    """

    return _send_email(to_email, subject, html_body, text_body)
