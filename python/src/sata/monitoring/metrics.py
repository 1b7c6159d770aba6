"""
Prometheus metrics for the identity subsystem.

Exported at the ``/metrics`` endpoint mounted in ``sata.main``.
"""

from prometheus_client import Counter, Info

# ============================================================================
# Authentication
# ============================================================================

login_attempts_total = Counter(
    "sata_login_attempts_total",
    "Login attempts by portal and outcome",
    ["portal", "outcome"],  # outcome: session, step_up, or an error code
)

step_up_verifications_total = Counter(
    "sata_step_up_verifications_total",
    "Step-up verification attempts by outcome",
    ["outcome"],  # 'verified', 'failed', 'throttled'
)

# ============================================================================
# Invitations
# ============================================================================

invitations_issued_total = Counter(
    "sata_invitations_issued_total",
    "Invitations issued",
    ["kind", "delivered"],  # kind: 'created' or 'reissued'
)

invitations_redeemed_total = Counter(
    "sata_invitations_redeemed_total",
    "Invitation redemption attempts by outcome",
    ["outcome"],  # 'redeemed', 'invalid'
)

password_resets_total = Counter(
    "sata_password_resets_total",
    "Password-reset requests and completions by outcome",
    ["stage", "outcome"],  # stage: 'requested', 'completed'
)

# ============================================================================
# Tenant lifecycle
# ============================================================================

tenants_created_total = Counter(
    "sata_tenants_created_total",
    "Tenants created by owner registration or bootstrap",
)

tenant_deletions_total = Counter(
    "sata_tenant_deletions_total",
    "Tenant and account deletions",
    ["mode", "outcome"],  # mode: 'self_service', 'forced'
)

backend_info = Info(
    "sata_persistence_backend",
    "Persistence backend selected at startup",
)
