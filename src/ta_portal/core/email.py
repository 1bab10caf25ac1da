"""
Email Service using Resend

Renders and sends the recruitment notification emails. Without
RESEND_API_KEY the email is logged instead of sent.
"""

import asyncio
import logging
from html import escape

import resend

from ta_portal.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #1e3a8a; margin-bottom: 24px; }
    .button { display: inline-block; background-color: #1e3a8a; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
    .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(
    title: str,
    greeting: str,
    paragraphs: list[str],
    button: tuple[str, str] | None = None,
) -> str:
    """Wrap already-escaped paragraphs in the common layout."""
    body = "\n".join(f"<p>{p}</p>" for p in paragraphs)
    button_html = f'<a href="{button[1]}" class="button">{button[0]}</a>' if button else ""
    return f"""
    <!DOCTYPE html>
    <html>
    <head><style>{_STYLE}</style></head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>
            <p>{greeting}</p>
            {body}
            {button_html}
            <div class="footer">
                <p>TA Recruitment Team</p>
            </div>
        </div>
    </body>
    </html>
    """


def _module_label(module_code: str, module_name: str) -> str:
    return f"{escape(module_code)} - {escape(module_name)}"


async def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """
    Send an email using Resend.

    Returns:
        True if the email was sent (or logged in the absence of an API key)
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_module_advertised(
    to_email: str,
    module_code: str,
    module_name: str,
    role: str,
    required_ta_hours: float | None = None,
) -> bool:
    """Announce a newly advertised module to a role's mailing list."""
    label = _module_label(module_code, module_name)
    paragraphs = [
        f"A new TA position is available for <strong>{label}</strong>.",
        f"Applications are open to {escape(role)} students.",
    ]
    if required_ta_hours:
        paragraphs.append(f"Expected workload: {required_ta_hours:g} hours per week.")
    html = _render(
        "New TA Position Available",
        "Hello,",
        paragraphs,
        button=("View open positions", f"{settings.frontend_url}/ta/requests"),
    )
    return await send_email(
        to_email, f"New TA Position Available: {escape(module_code)} - {escape(module_name)}", html
    )


async def send_application_received(to_email: str, module_code: str, module_name: str) -> bool:
    html = _render(
        "Application Received",
        "Hello,",
        [
            f"Your TA application for <strong>{_module_label(module_code, module_name)}</strong> "
            "has been received.",
            "The module coordinators will review it and you will be notified of the outcome.",
        ],
    )
    return await send_email(to_email, f"TA application received: {escape(module_code)}", html)


async def send_application_accepted(to_email: str, module_code: str, module_name: str) -> bool:
    html = _render(
        "Application Accepted",
        "Congratulations,",
        [
            f"Your TA application for <strong>{_module_label(module_code, module_name)}</strong> "
            "has been accepted.",
            "You will be asked to submit your documents once document collection opens.",
        ],
        button=("View accepted modules", f"{settings.frontend_url}/ta/accepted"),
    )
    return await send_email(to_email, f"TA application accepted: {escape(module_code)}", html)


async def send_application_rejected(to_email: str, module_code: str, module_name: str) -> bool:
    html = _render(
        "Application Update",
        "Hello,",
        [
            f"Thank you for applying for <strong>{_module_label(module_code, module_name)}</strong>.",
            "Unfortunately your application was not successful this time.",
        ],
    )
    return await send_email(to_email, f"TA application update: {escape(module_code)}", html)


async def send_documents_requested(
    to_email: str,
    module_code: str,
    module_name: str,
    due_date: str | None = None,
) -> bool:
    paragraphs = [
        f"Document collection is now open for <strong>{_module_label(module_code, module_name)}</strong>.",
        "Please upload your CV, NIC copy and bank passbook copy "
        "(and degree certificate if you are a postgraduate).",
    ]
    if due_date:
        paragraphs.append(f"<strong>Documents are due by {escape(due_date)}.</strong>")
    html = _render(
        "Submit Your Documents",
        "Hello,",
        paragraphs,
        button=("Submit documents", f"{settings.frontend_url}/ta/documents"),
    )
    return await send_email(to_email, f"Documents required: {escape(module_code)}", html)


async def send_documents_reviewed(to_email: str, decision: str, note: str | None = None) -> bool:
    readable = decision.replace("-", " ")
    paragraphs = [f"Your submitted documents have been reviewed: <strong>{escape(readable)}</strong>."]
    if note:
        paragraphs.append(f'<div class="info-box">{escape(note)}</div>')
    html = _render("Document Review", "Hello,", paragraphs)
    return await send_email(to_email, f"Your TA documents: {escape(readable)}", html)


async def send_ta_appointed(to_email: str, module_code: str, module_name: str) -> bool:
    html = _render(
        "TA Appointment Confirmed",
        "Congratulations,",
        [
            f"You have been appointed as a Teaching Assistant for "
            f"<strong>{_module_label(module_code, module_name)}</strong>."
        ],
    )
    return await send_email(to_email, f"TA appointment: {escape(module_code)}", html)
