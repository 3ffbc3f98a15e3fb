"""
RFC 5322 message construction for the Gmail API.

Gmail's users.messages.send takes the whole message as a base64url string in
the "raw" field. Messages are multipart/alternative when both a plain and an
HTML body are given.
"""

import base64
from email.message import EmailMessage
from email.utils import formataddr

from relay.models.delivery import OutgoingEmail


class MessageBuilder:
    def __init__(self, sender_email: str, sender_name: str):
        self.sender_email = sender_email
        self.sender_name = sender_name

    @property
    def from_header(self) -> str:
        return formataddr((self.sender_name, self.sender_email))

    def build(self, item: OutgoingEmail) -> EmailMessage:
        if not item.to:
            raise ValueError("recipient is required")
        if not item.text_body and not item.html_body:
            raise ValueError("message needs a text or HTML body")

        msg = EmailMessage()
        msg["From"] = self.from_header
        msg["To"] = item.to
        msg["Subject"] = item.subject

        if item.text_body:
            msg.set_content(item.text_body)
            if item.html_body:
                msg.add_alternative(item.html_body, subtype="html")
        else:
            msg.set_content(item.html_body, subtype="html")
        return msg

    def build_raw(self, item: OutgoingEmail) -> str:
        return encode_raw(self.build(item))


def encode_raw(msg: EmailMessage) -> str:
    """base64url without padding, as Gmail expects."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
