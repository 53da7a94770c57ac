"""Renders notification and digest emails from Jinja2 templates."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from beacon.db.models.directory import DirectoryUserRow
from beacon.db.models.notification import NotificationRow

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATES_DIR)),
    autoescape=True,
    keep_trailing_newline=True,
)


def email_subject(notification: NotificationRow) -> str:
    if notification.priority in ("critical", "urgent"):
        return f"[{notification.priority.upper()}] {notification.title}"
    return notification.title


def render_email(notification: NotificationRow, recipient: DirectoryUserRow | None = None) -> tuple[str, str]:
    """Return (subject, html) for a notification."""
    recipient_name = recipient.display_name if recipient else None
    if notification.is_digest:
        template = _env.get_template("digest_email.html.j2")
        html = template.render(
            title=notification.title,
            recipient_name=recipient_name,
            items=notification.digest_items or [],
        )
    else:
        template = _env.get_template("notification_email.html.j2")
        html = template.render(
            title=notification.title,
            message=notification.message,
            priority=notification.priority,
            recipient_name=recipient_name,
            actions=notification.actions or [],
            deep_link=notification.deep_link,
            escalation_level=notification.escalation_level,
        )
    return email_subject(notification), html


def render_digest_summary(sections: list[dict], recipient: DirectoryUserRow | None = None) -> tuple[str, str]:
    """Return (subject, html) for one email covering several queued notifications."""
    count = sum(len(section["items"]) for section in sections)
    html = _env.get_template("digest_summary_email.html.j2").render(
        sections=sections,
        recipient_name=recipient.display_name if recipient else None,
    )
    return f"Your notification digest: {count} new", html
