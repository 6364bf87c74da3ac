"""Plain-text reminder templates.

Each renderer takes the template data dict the reminder dispatcher builds
and returns `(subject, body)`.
"""

from __future__ import annotations

from typing import Callable, Dict, Tuple

SIGNATURE = "-- WVPP Compliance"

Rendered = Tuple[str, str]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _training_due(data: dict) -> Rendered:
    days = int(data["days_until_due"])
    if days <= 1:
        subject = "Action Required: Training Due Tomorrow"
        heading = "Training Due Tomorrow"
    else:
        subject = f"Training Due in {days} Days"
        heading = f"Training Due in {days} days"
    lines = [
        heading,
        "",
        f"Hi {data['employee_name']},",
        "",
        f"Your annual SB 553 workplace violence prevention training for "
        f"{data['organization_name']} is due on {data['due_date']}.",
    ]
    if days <= 7:
        lines.append("Please complete your training as soon as possible to remain compliant.")
    lines += ["Log in to your employee portal to complete the required training modules.", "", SIGNATURE]
    return subject, "\n".join(lines)


def _training_overdue(data: dict) -> Rendered:
    days = int(data["days_overdue"])
    body = "\n".join(
        [
            "Training Overdue",
            "",
            f"Hi {data['employee_name']},",
            "",
            f"Your annual SB 553 training for {data['organization_name']} was due on "
            f"{data['due_date']} and is now {_plural(days, 'day')} overdue.",
            "Please complete your training immediately to restore compliance.",
            "",
            SIGNATURE,
        ]
    )
    return "OVERDUE: Complete Your SB 553 Training", body


def _training_overdue_admin(data: dict) -> Rendered:
    days = int(data["days_overdue"])
    body = "\n".join(
        [
            "Employee Training Overdue",
            "",
            f"{data['employee_name']} has overdue SB 553 training.",
            f"Due date: {data['due_date']} ({_plural(days, 'day')} overdue)",
            "Please follow up with this employee to ensure they complete training. "
            "Overdue training affects your organization's compliance score.",
            "",
            SIGNATURE,
        ]
    )
    return f"Employee Training Overdue: {data['employee_name']}", body


def _annual_review(data: dict) -> Rendered:
    days = int(data["days_until_due"])
    soon = days <= 7
    subject = (
        "Action Required: Annual WVPP Review Due Soon"
        if soon
        else "Reminder: Annual WVPP Review Approaching"
    )
    lines = [
        "Annual WVPP Review Due Soon" if soon else "Annual WVPP Review Due",
        "",
        f"Your Workplace Violence Prevention Plan for {data['organization_name']} requires "
        f"its annual review by {data['review_due_date']} ({_plural(days, 'day')} remaining).",
        "California Labor Code Section 6401.9 requires annual review and update of your WVPP.",
    ]
    if soon:
        lines.append("This review is due soon. Please schedule time to complete it.")
    lines += ["", SIGNATURE]
    return subject, "\n".join(lines)


def _incident_followup(data: dict) -> Rendered:
    days = int(data["days_since_incident"])
    location = data.get("location_description") or "an unspecified location"
    body = "\n".join(
        [
            "Incident Investigation Follow-Up",
            "",
            f"An incident reported on {data['incident_date']} at {location} for "
            f"{data['organization_name']} has an open investigation that is "
            f"{_plural(days, 'day')} old.",
            "Please update the investigation status or complete the investigation to maintain compliance.",
            "",
            SIGNATURE,
        ]
    )
    return "Open Incident Investigation Requires Follow-Up", body


TEMPLATES: Dict[str, Callable[[dict], Rendered]] = {
    "training_due": _training_due,
    "training_overdue": _training_overdue,
    "training_overdue_admin": _training_overdue_admin,
    "annual_review": _annual_review,
    "incident_followup": _incident_followup,
}


def render(reminder_type: str, data: dict) -> Rendered:
    renderer = TEMPLATES.get(reminder_type)
    if renderer is None:
        raise ValueError(f"Unknown reminder type: {reminder_type}")
    return renderer(data)
