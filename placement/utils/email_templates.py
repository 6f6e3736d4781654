"""Email templates: subject, HTML and plain-text bodies.

Bodies carry an ``{{unsubscribe_url}}`` placeholder that the email service
fills in at send time.
"""

from html import escape
from typing import Any, Callable, Dict, List, Optional, Tuple

BRAND = "Placement"
UNSUBSCRIBE_PLACEHOLDER = "{{unsubscribe_url}}"

Cta = Optional[Tuple[str, str]]


def _company(data: Dict[str, Any]) -> str:
    return data.get("company_name") or "your prospective company"


def _job(data: Dict[str, Any]) -> str:
    return data.get("job_title") or "role"


def _recipient(data: Dict[str, Any]) -> str:
    return (
        data.get("recipient_name")
        or data.get("student_name")
        or data.get("contact_name")
        or data.get("company_name")
        or "there"
    )


def _cta(data: Dict[str, Any], link_key: str, text: str) -> Cta:
    url = data.get(link_key)
    return (text, url) if url else None


# Application status templates


def _application_submitted(data):
    return (
        "Your application has been submitted",
        [
            f"Thanks for applying to {_company(data)} for the {_job(data)}.",
            "We'll notify you as soon as there is an update.",
        ],
        _cta(data, "application_link", "View application"),
    )


def _application_approved(data):
    return (
        f"Good news! Your application is now with {_company(data)}",
        [
            "The hiring team is reviewing your profile. We'll keep you posted once they respond.",
            "In the meantime, feel free to prepare any supporting materials you'd like to share.",
        ],
        _cta(data, "application_link", "Review status"),
    )


def _application_rejected(data):
    paragraphs = [f"{_company(data)} has decided not to move forward with the {_job(data)}."]
    if data.get("reason"):
        paragraphs.append(f"Reason: {data['reason']}")
    paragraphs.append(f"Keep your momentum going. There are more opportunities waiting on {BRAND}.")
    return "Update on your application", paragraphs, _cta(data, "dashboard_link", "Discover more roles")


def _application_hired(data):
    return (
        "Congratulations! You've been hired!",
        [
            f"{_company(data)} can't wait for you to join.",
            "We'll share any additional onboarding details as soon as they come through.",
        ],
        _cta(data, "dashboard_link", "Review next steps"),
    )


APPLICATION_TEMPLATES: Dict[str, Callable] = {
    "submitted": _application_submitted,
    "approved": _application_approved,
    "rejected": _application_rejected,
    "hired": _application_hired,
}


def _company_approved(data):
    return (
        "Your company has been approved",
        [
            f"{_company(data)} is now live on {BRAND}.",
            "Start posting roles and reviewing applicants.",
        ],
        _cta(data, "dashboard_link", "Post a new role"),
    )


def _company_rejected(data):
    feedback = (
        f"Here is the feedback we received: {data['reason']}"
        if data.get("reason")
        else "Please review your submission, update any missing details, and resubmit when ready."
    )
    return (
        "Update on your company registration",
        [f"{_company(data)} was not approved this time.", feedback],
        _cta(data, "dashboard_link", "Update company profile"),
    )


def _job_status(data):
    status = data.get("status", "updated")
    if status == "approved":
        subject = f'Your job posting "{_job(data)}" is live'
        paragraphs = ["Students can now discover and apply to this role."]
    else:
        subject = f'Your job posting "{_job(data)}" was not approved'
        paragraphs = ["Please review the posting and resubmit when ready."]
        if data.get("reason"):
            paragraphs.insert(0, f"Reason: {data['reason']}")
    return subject, paragraphs, _cta(data, "dashboard_link", "Open dashboard")


def _html_layout(title: str, greeting: str, paragraphs: List[str], cta: Cta) -> str:
    body = "".join(
        f'<p style="margin:0 0 16px;font-size:15px;line-height:22px;color:#1f2933;">{escape(p)}</p>'
        for p in paragraphs
        if p
    )
    button = ""
    if cta:
        text, url = cta
        button = (
            f'<p style="margin:24px 0"><a href="{escape(url, quote=True)}" '
            f'style="background:#2563eb;color:#fff;padding:12px 20px;border-radius:6px;'
            f'text-decoration:none;font-weight:600;display:inline-block;">{escape(text)}</a></p>'
        )
    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{escape(title)}</title>
  </head>
  <body style="font-family:Helvetica,Arial,sans-serif;background:#f8fafc;padding:32px;margin:0;">
    <h1 style="font-size:22px;margin:0 0 16px;color:#0f172a;">{escape(title)}</h1>
    <p style="margin:0 0 16px;font-size:15px;line-height:22px;color:#0f172a;">{escape(greeting)}</p>
    {body}
    {button}
    <p style="margin-top:32px;font-size:13px;color:#475467;">Cheers,<br/>The {BRAND} Team</p>
    <p style="margin-top:24px;font-size:12px;color:#98a2b3;">If you'd like to stop receiving these updates, <a href="{UNSUBSCRIBE_PLACEHOLDER}">unsubscribe here</a>.</p>
  </body>
</html>"""


def _text_layout(greeting: str, paragraphs: List[str], cta: Cta) -> str:
    parts = [greeting, *[p for p in paragraphs if p]]
    if cta:
        parts.append(f"{cta[0]}: {cta[1]}")
    parts.append(f"Unsubscribe: {UNSUBSCRIBE_PLACEHOLDER}")
    return "\n\n".join(parts) + "\n"


def render(template_key: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """Render a template to ``{"subject", "html", "text"}``.

    ``application_status`` picks its variant from ``data["status"]``.
    """
    data = data or {}
    if template_key == "application_status":
        builder = APPLICATION_TEMPLATES.get(str(data.get("status", "submitted")).lower(), _application_submitted)
    elif template_key == "company_approved":
        builder = _company_approved
    elif template_key == "company_rejected":
        builder = _company_rejected
    elif template_key == "job_status":
        builder = _job_status
    else:
        raise KeyError(f"Unknown email template: {template_key}")

    subject, paragraphs, cta = builder(data)
    greeting = f"Hi {_recipient(data)}!"
    return {
        "subject": subject,
        "html": _html_layout(subject, greeting, paragraphs, cta),
        "text": _text_layout(greeting, paragraphs, cta),
    }
