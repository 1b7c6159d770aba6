"""
Invitation and password-reset delivery through Resend's HTTP API.

Delivery is reported, never raised: an invitation whose email could not be
sent is still valid and its link is returned to the inviter.
"""

import logging
from typing import List, Optional

import httpx

from ...core.config import Settings
from ...core.results import DeliveryResult
from .templates import render_invitation, render_password_reset

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "Falta la API Key de Resend."
SANDBOX_MESSAGE = (
    "Modo Prueba: Solo puedes enviar correos a tu propio email registrado. "
    "Para enviar a otros, verifica un dominio en Resend."
)


class InvitationMailer:
    """
    Sends invitation emails via Resend.

    ``transport`` lets tests substitute ``httpx.MockTransport``.
    """

    TIMEOUT = 10.0

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.RESEND_API_KEY
        self.sender = settings.SENDER_EMAIL
        self.api_url = settings.RESEND_API_URL
        self._transport = transport

    async def send(self, to: List[str], subject: str, html: str) -> DeliveryResult:
        if not self.api_key:
            logger.error("Resend API key missing; email not sent")
            return DeliveryResult(success=False, message=MISSING_KEY_MESSAGE)

        logger.info(f"Sending email to {', '.join(to)}")

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.TIMEOUT) as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": self.sender,
                        "to": to,
                        "subject": subject,
                        "html": html,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Network error sending email: {e}")
            return DeliveryResult(
                success=False,
                message=f"Error de conexión: {str(e) or 'Desconocido'}",
            )

        if response.is_success:
            logger.info(f"Email sent to {', '.join(to)}")
            return DeliveryResult(success=True, message="Correo enviado exitosamente.")

        error_message = self._error_message(response)
        if "own email address" in error_message:
            logger.warning(f"Resend sandbox restriction: {error_message}")
            return DeliveryResult(success=False, message=SANDBOX_MESSAGE)

        logger.error(f"Resend API error {response.status_code}: {error_message}")
        return DeliveryResult(success=False, message=f"Error Resend: {error_message}")

    async def send_invitation(
        self,
        name: str,
        email: str,
        role: str,
        link: str,
        tenant_role: Optional[str] = None,
        tenant_name: Optional[str] = None,
    ) -> DeliveryResult:
        subject, html = render_invitation(name, role, tenant_role, tenant_name, link)
        return await self.send([email], subject, html)

    async def send_password_reset(self, email: str, link: str) -> DeliveryResult:
        subject, html = render_password_reset(link)
        return await self.send([email], subject, html)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(data, dict):
            return str(data.get("message") or data.get("name") or data)
        return str(data)
