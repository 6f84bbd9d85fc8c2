"""SMTP email delivery with a small HTML template."""
from __future__ import annotations

from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import aiosmtplib
from jinja2 import Environment, select_autoescape

from notifyhub.config import Settings
from notifyhub.services.channels.base import ChannelSender
from notifyhub.utils.exceptions import DeliveryFailed


_jinja_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

HTML_TEMPLATE = _jinja_env.from_string(
    """\
<div style="font-family: Arial, sans-serif; line-height:1.4; color:#111;">
  <h3>{{ title }}</h3>
  <p>{{ message }}</p>
  {% if link %}<p><a href="{{ link }}">View details</a></p>{% endif %}
  <hr/>
  <p style="font-size:12px;color:#777">Sent by {{ sent_by }}</p>
</div>
"""
)

TEXT_TEMPLATE = Environment(autoescape=False).from_string(
    """\
{{ title }}

{{ message }}
{% if link %}
View details: {{ link }}
{% endif %}
--
Sent by {{ sent_by }}
"""
)


@dataclass
class EmailContent:
    title: str
    message: str
    link: str | None = None


class EmailSender(ChannelSender[str, EmailContent]):
    """Deliver one templated message per call over SMTP."""

    name = "email"

    def __init__(
        self,
        *,
        host: str | None,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        from_address: str | None = None,
        webapp_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address or username
        self.webapp_url = webapp_url
        self.timeout = timeout
        super().__init__(enabled=bool(host and username), missing="EMAIL_HOST/EMAIL_USER")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailSender":
        return cls(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            username=settings.EMAIL_USER,
            password=settings.EMAIL_PASSWORD,
            from_address=settings.EMAIL_FROM,
            webapp_url=settings.WEBAPP_URL,
            timeout=settings.DELIVERY_TIMEOUT_SECONDS,
        )

    def render(self, content: EmailContent) -> tuple[str, str]:
        """Return ``(text, html)`` bodies for ``content``."""

        context = {
            "title": content.title,
            "message": content.message,
            "link": content.link,
            "sent_by": self.webapp_url or "your app",
        }
        return TEXT_TEMPLATE.render(**context), HTML_TEMPLATE.render(**context)

    def build_message(self, to_address: str, content: EmailContent) -> MIMEMultipart:
        text_body, html_body = self.render(content)
        message = MIMEMultipart("alternative")
        message["Subject"] = content.title
        message["From"] = self.from_address
        message["To"] = to_address
        message.attach(MIMEText(text_body, "plain"))
        message.attach(MIMEText(html_body, "html"))
        return message

    async def _deliver(self, target: str, content: EmailContent) -> Any:
        message = self.build_message(target, content)
        try:
            return await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.port == 465,
                start_tls=None if self.port == 465 else True,
                timeout=self.timeout,
            )
        except aiosmtplib.SMTPException as exc:
            raise DeliveryFailed(
                f"Email delivery failed: {exc}",
                channel=self.name,
                status_code=getattr(exc, "code", None),
            ) from exc
        except OSError as exc:
            raise DeliveryFailed(f"Email delivery failed: {exc}", channel=self.name) from exc
