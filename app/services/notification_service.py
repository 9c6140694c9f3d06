"""
Notification Service Module

Email notifications for the assignment workflow, sent asynchronously via
aiosmtplib and rendered with Jinja2 templates.

Recipients are resolved while the request's database session is open;
delivery runs afterwards as a background task.
"""

import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.assignment import AssignmentStatus
from app.models.user import User, PRACTICE_LEAD_ROLES


logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

template_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(['html', 'xml'])
)


@dataclass
class EmailNotification:
    to: List[str]
    subject: str
    body: str
    html_body: Optional[str] = None


async def send_email(
    to: Union[str, List[str]],
    subject: str,
    body: str,
    html_body: Optional[str] = None,
    reply_to: Optional[str] = None,
    cc: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Send an email using async SMTP.

    Args:
        to: Recipient email address(es)
        subject: Email subject
        body: Plain text body
        html_body: Optional HTML body
        reply_to: Optional reply-to address
        cc: Optional CC recipients

    Returns:
        Dictionary with 'success', 'message_id', and optionally 'error'
    """
    if not settings.NOTIFICATION_ENABLED:
        logger.debug("Notifications are disabled")
        return {"success": False, "message_id": None, "error": "Notifications disabled"}

    if not settings.email_enabled:
        logger.warning("Email is not configured")
        return {"success": False, "message_id": None, "error": "Email not configured"}

    recipients = [to] if isinstance(to, str) else to

    sender_email = settings.SMTP_FROM_EMAIL or settings.SMTP_USER
    sender_name = settings.SMTP_FROM_NAME

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"{sender_name} <{sender_email}>" if sender_name else sender_email
    message["To"] = ", ".join(recipients)

    if reply_to:
        message["Reply-To"] = reply_to
    if cc:
        message["Cc"] = ", ".join(cc)

    message.attach(MIMEText(body, "plain", "utf-8"))
    if html_body:
        message.attach(MIMEText(html_body, "html", "utf-8"))

    all_recipients = recipients + (cc or [])

    try:
        smtp_kwargs = {
            "hostname": settings.SMTP_HOST,
            "port": settings.SMTP_PORT,
            "timeout": settings.SMTP_TIMEOUT,
        }

        if settings.SMTP_USE_SSL:
            smtp_kwargs["use_tls"] = True
        elif settings.SMTP_USE_TLS:
            smtp_kwargs["start_tls"] = True

        async with aiosmtplib.SMTP(**smtp_kwargs) as smtp:
            if settings.SMTP_USER and settings.SMTP_PASSWORD:
                await smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)

            await smtp.send_message(message, recipients=all_recipients)

        logger.info(f"Email sent successfully to {recipients}")
        return {
            "success": True,
            "message_id": message.get("Message-ID"),
            "error": None
        }

    except aiosmtplib.SMTPException as e:
        logger.error(f"SMTP error sending email: {str(e)}")
        return {
            "success": False,
            "message_id": None,
            "error": f"SMTP error: {str(e)}"
        }
    except Exception as e:
        logger.error(f"Error sending email: {str(e)}")
        return {
            "success": False,
            "message_id": None,
            "error": str(e)
        }


async def deliver_notifications(notifications: List[EmailNotification]) -> List[Dict[str, Any]]:
    """Background task: send prepared notifications one by one."""
    results = []
    for notification in notifications:
        result = await send_email(
            to=notification.to,
            subject=notification.subject,
            body=notification.body,
            html_body=notification.html_body
        )
        results.append({"to": notification.to, **result})
    return results


def render_template(template_name: str, context: Dict[str, Any]) -> str:
    try:
        template = template_env.get_template(template_name)
        return template.render(**context)
    except Exception as e:
        logger.error(f"Error rendering template {template_name}: {str(e)}")
        raise


class NotificationService:
    """
    Builds workflow emails for assignments and SA assignments.

    - New request waiting in Pending -> every practice manager/principal
    - Practice chosen (Unassigned) -> leads of the chosen practices
    - Staffed (Assigned) -> the assignees and the account manager
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _active_users(self, query) -> List[User]:
        result = await self.db.execute(query.where(User.is_active == True))
        return list(result.scalars().all())

    async def practice_lead_emails(self, practices: Optional[List[str]] = None) -> List[str]:
        """Leads of any of the given practices, or every lead when practices is None."""
        leads = await self._active_users(select(User).where(User.role.in_(PRACTICE_LEAD_ROLES)))
        if practices is not None:
            wanted = set(practices)
            leads = [u for u in leads if wanted & set(u.practices or [])]
        return sorted({u.email for u in leads})

    async def emails_for_names(self, names: List[str]) -> List[str]:
        """Match people by name or email, case-insensitively."""
        lowered = [n.strip().lower() for n in names if n and n.strip()]
        if not lowered:
            return []
        users = await self._active_users(
            select(User).where(
                func.lower(User.name).in_(lowered) | func.lower(User.email).in_(lowered)
            )
        )
        return sorted({u.email for u in users})

    @staticmethod
    def record_url(record) -> str:
        path = "sa-assignments" if record.entity_type == "sa_assignment" else "assignments"
        return f"{settings.FRONTEND_BASE_URL}/{path}/{record.id}"

    def _build(self, record, to: List[str], headline: str) -> EmailNotification:
        kind = "SA Assignment" if record.entity_type == "sa_assignment" else "Resource Assignment"
        context = {
            "kind": kind,
            "headline": headline,
            "number": record.display_number,
            "customer_name": record.customer_name,
            "status": record.status.value,
            "practice": record.practice,
            "am": record.am,
            "assignees": ", ".join(record.assignees),
            "date_assigned": record.date_assigned,
            "request_date": record.request_date,
            "eta": record.eta,
            "notes": record.notes,
            "record_url": self.record_url(record),
        }

        subject = f"[{kind} #{record.display_number}] {headline} - {record.customer_name}"
        text_body = f"""
{headline}

{kind} #{record.display_number}
Customer: {record.customer_name}
Status: {context['status']}
Practice: {record.practice}
{'Assigned: ' + context['assignees'] if context['assignees'] else ''}

View: {context['record_url']}
"""
        return EmailNotification(
            to=to,
            subject=subject,
            body=text_body,
            html_body=render_template("assignment_notification.html", context)
        )

    async def prepare_record_notifications(
        self,
        record,
        old_status: Optional[AssignmentStatus] = None
    ) -> List[EmailNotification]:
        """
        Emails owed after a record was created (old_status None) or changed
        status. Returns an empty list when nothing is owed.
        """
        if old_status == record.status:
            return []

        notifications = []
        if record.status == AssignmentStatus.PENDING:
            to = await self.practice_lead_emails()
            if to:
                notifications.append(self._build(record, to, "New request awaiting practice assignment"))

        elif record.status == AssignmentStatus.UNASSIGNED:
            to = await self.practice_lead_emails(record.practices)
            if to:
                notifications.append(self._build(record, to, f"Request assigned to {record.practice}"))

        elif record.status == AssignmentStatus.ASSIGNED:
            to = await self.emails_for_names(record.assignees + ([record.am] if record.am else []))
            if to:
                notifications.append(self._build(record, to, f"Assigned to {', '.join(record.assignees)}"))

        logger.debug(
            f"Prepared {len(notifications)} notification(s) for {record.entity_type} {record.id}"
        )
        return notifications
