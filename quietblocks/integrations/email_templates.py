"""Reminder email content (subject, HTML and plain-text bodies)."""

from html import escape

from quietblocks.engine.reminders import ReminderMessage


def reminder_subject(message: ReminderMessage) -> str:
    return f'Reminder: "{message.block_title}" starts in {message.minutes_until_start} minutes'


def _greeting_name(message: ReminderMessage) -> str:
    return message.recipient_name or "there"


def reminder_text(message: ReminderMessage) -> str:
    lines = [
        f"Hi {_greeting_name(message)},",
        "",
        f"Your quiet block starts in {message.minutes_until_start} minutes!",
        "",
        "Quiet Block Details:",
        f"- Title: {message.block_title}",
        f"- Start Time: {message.start_display}",
        f"- End Time: {message.end_display}",
        f"- Duration: {message.duration_minutes} minutes",
    ]
    if message.location:
        lines.append(f"- Location: {message.location}")
    if message.description:
        lines.append(f"- Description: {message.description}")
    if message.dashboard_url:
        lines += ["", f"View your dashboard: {message.dashboard_url}"]
    lines += [
        "",
        "This reminder was sent because you have email reminders enabled for this quiet block.",
    ]
    return "\n".join(lines)


def reminder_html(message: ReminderMessage) -> str:
    rows = [
        ("Title", message.block_title),
        ("Start Time", message.start_display),
        ("End Time", message.end_display),
        ("Duration", f"{message.duration_minutes} minutes"),
    ]
    if message.location:
        rows.append(("Location", message.location))
    if message.description:
        rows.append(("Description", message.description))
    details = "\n".join(
        f"<p><strong>{escape(label)}:</strong> {escape(value)}</p>" for label, value in rows
    )
    button = ""
    if message.dashboard_url:
        button = (
            f'<p style="margin-top: 30px;"><a href="{escape(message.dashboard_url, quote=True)}" '
            'style="background-color: #4f46e5; color: white; padding: 12px 24px; '
            'text-decoration: none; border-radius: 6px;">View Dashboard</a></p>'
        )
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Quiet Block Reminder</title></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; color: #333;">
  <h2>Quiet Block Reminder</h2>
  <p>Hi {escape(_greeting_name(message))},</p>
  <p><strong>Your quiet block starts in {message.minutes_until_start} minutes!</strong></p>
  <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
{details}
  </div>
  {button}
  <p style="color: #666; font-size: 12px; margin-top: 30px;">
    This reminder was sent because you have email reminders enabled for this quiet block.
  </p>
</body>
</html>"""
