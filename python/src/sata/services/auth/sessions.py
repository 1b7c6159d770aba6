"""Session issuing for fully authenticated accounts."""

from ...core.results import AccountView, Session
from ...core.session_tokens import SessionTokenService
from ...models import User


class SessionIssuer:
    """Builds a ``Session`` (account snapshot plus signed token) for an account."""

    def __init__(self, tokens: SessionTokenService):
        self.tokens = tokens

    def issue(self, account: User) -> Session:
        view = AccountView.from_user(account)
        token, expires_at = self.tokens.issue(
            account_id=view.id,
            email=view.email,
            role=view.role,
            tenant_id=view.farm_id,
            tenant_role=view.company_role,
        )
        return Session(account=view, access_token=token, expires_at=expires_at)
