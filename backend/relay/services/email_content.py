"""
Email bodies sent to requesters.

Public API:
  confirmation_email(recipient, name, message, language="en") -> OutgoingEmail
  response_email(recipient, name, original_message, response) -> OutgoingEmail

User-supplied text is HTML-escaped before it goes into the HTML part; the
plain-text part carries it as-is.
"""

import html
from datetime import datetime
from typing import Optional

from relay.models.delivery import OutgoingEmail, utcnow

CONFIRMATION_SUBJECT = "Block Royale - Thank you for your message!"
RESPONSE_SUBJECT = "Re: Your BlockBlast Support Request"
ORIGINAL_MESSAGE_PLACEHOLDER = "Your original request"

# ---------------------------------------------------------------------------
# Localization
# ---------------------------------------------------------------------------

DEFAULT_LANGUAGE = "en"

LOCALIZATION: dict[str, dict[str, str]] = {
    "en": {
        "title": "Thank you for your message!",
        "greeting": "Dear {name},",
        "received": (
            "Thank you for contacting Block Royale support. We have received your "
            "request and will respond within 24 hours."
        ),
        "your_message": "Your message",
        "ticket": "Ticket",
        "date": "Date",
        "signature": "Best regards,",
        "team": "Block Royale Support Team",
    },
    "uk": {
        "title": "Дякуємо за ваше повідомлення!",
        "greeting": "Шановний(а) {name},",
        "received": (
            "Дякуємо, що звернулися до служби підтримки Block Royale. Ми отримали "
            "ваш запит і відповімо протягом 24 годин."
        ),
        "your_message": "Ваше повідомлення",
        "ticket": "Звернення",
        "date": "Дата",
        "signature": "З найкращими побажаннями,",
        "team": "Команда підтримки Block Royale",
    },
}


def normalize_language(language: Optional[str]) -> str:
    """'uk-UA' -> 'uk'; unknown or empty -> 'en'."""
    if not language:
        return DEFAULT_LANGUAGE
    short = language.strip().lower().replace("_", "-").split("-")[0]
    return short if short in LOCALIZATION else DEFAULT_LANGUAGE


def get_localization(language: Optional[str]) -> dict[str, str]:
    return LOCALIZATION[normalize_language(language)]


def _html_lines(text: str) -> str:
    return html.escape(text).replace("\n", "<br>")


def ticket_id(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"TG{int(now.timestamp() * 1000)}"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def confirmation_email(
    recipient: str,
    name: str,
    message: str,
    language: Optional[str] = DEFAULT_LANGUAGE,
    now: Optional[datetime] = None,
) -> OutgoingEmail:
    now = now or utcnow()
    loc = get_localization(language)
    greeting = loc["greeting"].format(name=name)

    text_body = (
        f"{greeting}\n\n"
        f"{loc['received']}\n\n"
        f"{loc['your_message']}: \"{message}\"\n\n"
        f"{loc['signature']}\n{loc['team']}"
    )

    html_body = f"""<!DOCTYPE html>
<html lang="{normalize_language(language)}">
<head><meta charset="utf-8"><title>{html.escape(loc['title'])}</title></head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
  <h2>{html.escape(loc['title'])}</h2>
  <p>{html.escape(greeting)}</p>
  <p>{html.escape(loc['received'])}</p>
  <p><strong>{html.escape(loc['your_message'])}:</strong></p>
  <blockquote style="font-style: italic; color: #555;">{_html_lines(message)}</blockquote>
  <p><small>{html.escape(loc['ticket'])}: {ticket_id(now)} &middot; {html.escape(loc['date'])}: {now.strftime('%B %d, %Y')}</small></p>
  <p><strong>{html.escape(loc['signature'])}</strong><br>{html.escape(loc['team'])}</p>
</body>
</html>"""

    return OutgoingEmail(
        to=recipient,
        subject=CONFIRMATION_SUBJECT,
        text_body=text_body,
        html_body=html_body,
    )


def response_email(
    recipient: str,
    name: str,
    original_message: Optional[str],
    response: str,
) -> OutgoingEmail:
    original = original_message or ORIGINAL_MESSAGE_PLACEHOLDER

    text_body = (
        f"Dear {name},\n\n"
        f"{response}\n\n"
        f"Your original message: \"{original}\"\n\n"
        f"Best regards,\nBlockBlast Support Team"
    )

    html_body = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>BlockBlast Support Response</title></head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
  <p>Dear {html.escape(name)},</p>
  <p>Thank you for contacting BlockBlast support. We have reviewed your request and here's our response:</p>
  <div style="background: #f8f9fa; border-left: 4px solid #667eea; padding: 16px;">{_html_lines(response)}</div>
  <h4>Your Original Message:</h4>
  <div style="font-style: italic; color: #555;">"{_html_lines(original)}"</div>
  <p>If you have any additional questions, simply reply to this email.</p>
  <p><strong>Best regards,</strong><br>BlockBlast Support Team</p>
</body>
</html>"""

    return OutgoingEmail(
        to=recipient,
        subject=RESPONSE_SUBJECT,
        text_body=text_body,
        html_body=html_body,
    )
