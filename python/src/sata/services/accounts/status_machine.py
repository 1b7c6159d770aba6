"""
Account status state machine.

    Pendiente ──redeem──▶ Activo ◀──unblock── Bloqueado
                            └──────block──────▶

Block and unblock are idempotent when the account is already in the
target state. ``Inactivo`` is a valid persisted state (it blocks login)
but no trigger leads to it.

Uses the ``transitions`` library with auto-transitions disabled, so only
the transitions listed here can fire.
"""

import logging
from enum import Enum

from transitions import Machine, MachineError

from ...core.exceptions import IllegalTransition
from ...models import AccountStatus

logger = logging.getLogger(__name__)


class StatusTrigger(str, Enum):
    REDEEM = "redeem"
    BLOCK = "block"
    UNBLOCK = "unblock"


ILLEGAL_MESSAGES = {
    StatusTrigger.REDEEM: "Solo una cuenta pendiente puede activarse con una invitación (estado actual: {status}).",
    StatusTrigger.BLOCK: "No se puede bloquear una cuenta en estado {status}.",
    StatusTrigger.UNBLOCK: "No se puede desbloquear una cuenta en estado {status}.",
}


class AccountStatusMachine:
    """Status machine bound to one account's current status."""

    TRANSITIONS = [
        {
            "trigger": StatusTrigger.REDEEM.value,
            "source": AccountStatus.PENDING.value,
            "dest": AccountStatus.ACTIVE.value,
        },
        {
            "trigger": StatusTrigger.BLOCK.value,
            "source": AccountStatus.ACTIVE.value,
            "dest": AccountStatus.BLOCKED.value,
        },
        {
            "trigger": StatusTrigger.BLOCK.value,
            "source": AccountStatus.BLOCKED.value,
            "dest": "=",
        },
        {
            "trigger": StatusTrigger.UNBLOCK.value,
            "source": AccountStatus.BLOCKED.value,
            "dest": AccountStatus.ACTIVE.value,
        },
        {
            "trigger": StatusTrigger.UNBLOCK.value,
            "source": AccountStatus.ACTIVE.value,
            "dest": "=",
        },
    ]

    def __init__(self, status: AccountStatus):
        self.machine = Machine(
            model=self,
            states=[state.value for state in AccountStatus],
            transitions=self.TRANSITIONS,
            initial=AccountStatus(status).value,
            auto_transitions=False,  # Only allow defined transitions
        )

    @property
    def status(self) -> AccountStatus:
        return AccountStatus(self.state)

    def fire(self, trigger: StatusTrigger) -> AccountStatus:
        """
        Fire ``trigger`` and return the resulting status.

        Raises:
            IllegalTransition: If the trigger is not allowed from the current status
        """
        current = self.status
        try:
            getattr(self, trigger.value)()
        except MachineError as e:
            logger.info(f"Illegal status transition: {current.value} --{trigger.value}--> ?")
            raise IllegalTransition(
                ILLEGAL_MESSAGES[trigger].format(status=current.value)
            ) from e
        return self.status

    @classmethod
    def next_status(cls, current: AccountStatus, trigger: StatusTrigger) -> AccountStatus:
        return cls(current).fire(trigger)
