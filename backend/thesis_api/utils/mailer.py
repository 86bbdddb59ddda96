"""Outbound email for password recovery.

Messages go out over SMTP (implicit TLS by default, STARTTLS when
`MAIL_USE_SSL=false`). Delivery is attempted once; a failure is logged
and surfaced as `DeliveryError` so the caller can report it without
retrying. With no `MAIL_HOST` configured in the dev environment the
message is logged instead of sent.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage

from ..config import Settings, settings
from ..errors import ConfigurationError, DeliveryError

_LOGGER = logging.getLogger("thesis_api.mail")


class Mailer:
    def __init__(self, config: Settings = settings):
        self.config = config

    def send(self, to: str, subject: str, text: str, html_body: str | None = None) -> None:
        msg = EmailMessage()
        msg["From"] = f'"Soporte Tesis" <{self.config.MAIL_FROM}>'
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        if not self.config.MAIL_HOST:
            if self.config.ENV == "dev":
                _LOGGER.info("mail_not_configured to=%s subject=%s body=%s", to, subject, text)
                return
            raise ConfigurationError("mail transport is not configured")

        try:
            self._deliver(msg)
        except (smtplib.SMTPException, OSError) as exc:
            _LOGGER.error("mail_delivery_failed to=%s error=%s", to, exc)
            raise DeliveryError("could not send the email, try again later") from exc
        _LOGGER.info("mail_sent to=%s subject=%s", to, subject)

    def _deliver(self, msg: EmailMessage) -> None:
        cfg = self.config
        if cfg.MAIL_USE_SSL:
            smtp = smtplib.SMTP_SSL(cfg.MAIL_HOST, cfg.MAIL_PORT, timeout=cfg.MAIL_TIMEOUT_SECONDS)
        else:
            smtp = smtplib.SMTP(cfg.MAIL_HOST, cfg.MAIL_PORT, timeout=cfg.MAIL_TIMEOUT_SECONDS)
        with smtp:
            if not cfg.MAIL_USE_SSL:
                smtp.starttls()
            if cfg.MAIL_USER:
                smtp.login(cfg.MAIL_USER, cfg.MAIL_PASSWORD)
            smtp.send_message(msg)

    def send_password_reset(self, to: str, name: str, reset_url: str) -> None:
        text = (
            f"Hola {name},\n\n"
            "Hemos recibido una solicitud para restablecer tu contraseña.\n"
            f"Abre este enlace para elegir una nueva (válido por 1 hora):\n{reset_url}\n"
        )
        body = (
            '<div style="font-family: Arial, sans-serif; padding: 20px;">'
            '<h2 style="color: #0056b3;">Recuperación de Contraseña</h2>'
            f"<p>Hola <strong>{html.escape(name)}</strong>,</p>"
            "<p>Hemos recibido una solicitud para restablecer tu contraseña.</p>"
            f'<a href="{html.escape(reset_url, quote=True)}">Restablecer Contraseña</a>'
            "</div>"
        )
        self.send(to, "Recuperación de Contraseña", text, body)


def get_mailer() -> Mailer:
    """FastAPI dependency; tests override it with a fake."""
    return Mailer()
