"""
Invitation tokens, links and the invitation workflow.
"""

from .codec import InvitationCodec
from .links import (
    RESET_TOKEN_PARAM,
    TOKEN_PARAM,
    build_invitation_link,
    extract_invitation_token,
    strip_invitation_token,
)
from .service import InvitationService, InviterContext, Recipient

__all__ = [
    "RESET_TOKEN_PARAM",
    "TOKEN_PARAM",
    "InvitationCodec",
    "InvitationService",
    "InviterContext",
    "Recipient",
    "build_invitation_link",
    "extract_invitation_token",
    "strip_invitation_token",
]
