"""
Invitation and password-reset link helpers.

A link carries the token either as a query parameter (``?token=``) or, for
static hosting where only the base path is served, as a fragment
(``#token=``). Readers check the query first, then the fragment.
Password-reset links use ``reset_token`` instead of ``token``.

``extract_invitation_token`` and ``strip_invitation_token`` are the reading
side of that format. The web client follows the same rules when it lands
on a link (take the token, then drop it from the address bar), and
``GET /invitations/validate?url=`` uses the extractor for pasted links.
"""

from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

TOKEN_PARAM = "token"
RESET_TOKEN_PARAM = "reset_token"


def build_invitation_link(
    base_url: str, token: str, use_fragment: bool = True, param: str = TOKEN_PARAM
) -> str:
    """
    Build the link for ``token`` under ``param``.

    Any query or fragment already present on ``base_url`` is dropped.
    """
    parts = urlsplit(base_url)
    path = parts.path or "/"
    encoded = urlencode({param: token})
    if use_fragment:
        return urlunsplit((parts.scheme, parts.netloc, path, "", encoded))
    return urlunsplit((parts.scheme, parts.netloc, path, encoded, ""))


def _token_from(component: str, param: str) -> Optional[str]:
    values = parse_qs(component, keep_blank_values=False).get(param)
    return values[0] if values else None


def extract_invitation_token(url: str, param: str = TOKEN_PARAM) -> Optional[str]:
    """Return the token from the query string, else from the fragment, else None."""
    parts = urlsplit(url)
    return _token_from(parts.query, param) or _token_from(parts.fragment, param)


def strip_invitation_token(url: str, param: str = TOKEN_PARAM) -> str:
    """
    Return ``url`` without the token parameter in query and fragment.

    Other parameters are preserved.
    """
    parts = urlsplit(url)

    def _without_token(component: str) -> str:
        if _token_from(component, param) is None:
            return component
        pairs = [
            (key, value)
            for key, values in parse_qs(component, keep_blank_values=True).items()
            for value in values
            if key != param
        ]
        return urlencode(pairs)

    return urlunsplit(
        (
            parts.scheme,
            parts.netloc,
            parts.path,
            _without_token(parts.query),
            _without_token(parts.fragment),
        )
    )
