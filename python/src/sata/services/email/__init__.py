"""
Email delivery.
"""

from .resend_client import InvitationMailer
from .templates import render_invitation, render_password_reset

__all__ = ["InvitationMailer", "render_invitation", "render_password_reset"]
