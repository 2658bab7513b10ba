"""Outgoing email for account activation and password resets."""

import asyncio
import logging

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from .core import get_mail_config, get_settings

logger = logging.getLogger(__name__)


class Mailer:
    """
    Sends account emails and reports whether delivery succeeded.

    Callers fold the boolean result into their transaction decision, so
    failures are logged and reported rather than raised.
    """

    def __init__(self, config: ConnectionConfig, timeout: float | None = None):
        self.client = FastMail(config)
        self.timeout = timeout

    async def _send(self, subject: str, recipient: str, body: str) -> bool:
        message = MessageSchema(
            subject=subject,
            recipients=[recipient],
            body=body,
            subtype=MessageType.html,
        )
        try:
            await asyncio.wait_for(self.client.send_message(message), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Sending %r to %s timed out", subject, recipient)
            return False
        except Exception as exc:
            logger.warning("Sending %r to %s failed: %s", subject, recipient, exc)
            return False
        return True

    async def send_activation(self, email: str, user_id: str) -> bool:
        """
        Send the activation link for a pending registration.

        Args:
            email (str): Recipient email address.
            user_id (str): Identifier of the pending user.

        Returns:
            bool: ``True`` if the message was handed to the mail server.
        """
        settings = get_settings()
        activation_link = f"{settings.BASE_URL}/api/users/activate/{user_id}"
        return await self._send(
            "Confirmation of registration",
            email,
            f"""
            <html>
              <body>
                <h2>Welcome!</h2>
                <p>To activate your account, follow the link:</p>
                <a href="{activation_link}">Activate account</a>
                <p>The link expires in {settings.ACTIVATION_EXPIRE_MINUTES} minutes.</p>
              </body>
            </html>
            """,
        )

    async def send_password(self, email: str, password: str) -> bool:
        """
        Send a newly generated password.

        Args:
            email (str): Recipient email address.
            password (str): Plain-text password that was just stored.

        Returns:
            bool: ``True`` if the message was handed to the mail server.
        """
        return await self._send(
            "Your new password",
            email,
            f"""
            <html>
              <body>
                <h2>Password reset</h2>
                <p>Your password has been reset. Your new password is:</p>
                <p><strong>{password}</strong></p>
                <p>Please change it after logging in.</p>
              </body>
            </html>
            """,
        )


def get_mailer() -> Mailer:
    """Dependency that provides a configured :class:`Mailer`."""
    return Mailer(get_mail_config(), timeout=get_settings().MAIL_TIMEOUT_SECONDS)
