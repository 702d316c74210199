"""Actor context and the modify-permission check for entity views.

The console only decides whether modify affordances are *offered*; the record
service is the authority that accepts or rejects writes.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Actor context (populated by the authentication module, read-only here)
# ---------------------------------------------------------------------------


class ActorContext(BaseModel):
    account: str = ""
    roles: frozenset[str] = frozenset()

    model_config = {"frozen": True}

    @property
    def anonymous(self) -> bool:
        return self.account == ""

    @classmethod
    def anonymous_actor(cls) -> ActorContext:
        return cls()


# ---------------------------------------------------------------------------
# Permission evaluation
# ---------------------------------------------------------------------------


def can_modify(actor_roles: Iterable[str], modify_roles: Iterable[str]) -> bool:
    """True when the actor holds at least one of the description's modify roles."""
    return not set(actor_roles).isdisjoint(modify_roles)


def actor_can_modify(actor: ActorContext, modify_roles: Iterable[str]) -> bool:
    return can_modify(actor.roles, modify_roles)
