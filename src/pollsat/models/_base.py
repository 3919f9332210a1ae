"""Base model and status enum for pollsat records.

Every record inherits from :class:`PollsatBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase keys used by the backend
  and the device-auth blob map to snake_case fields.
* ``frozen=True``: records are immutable; the only permitted "mutation" is
  a status transition, which returns a new instance.

Status enums inherit from :class:`TransitionEnum`, which carries a table of
allowed transitions and refuses everything else.
"""

from __future__ import annotations

import enum
import time
from typing import ClassVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from pollsat.exceptions import InvalidTransitionError


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class TransitionEnum(enum.StrEnum):
    """String enum with an explicit transition table.

    Subclasses set ``_TRANSITIONS`` after the class body (enum members are
    not available inside it) mapping each member value to the values it may
    move to.  Terminal members map to an empty set.
    """

    _TRANSITIONS: ClassVar[dict[str, frozenset[str]]]

    @property
    def is_terminal(self) -> bool:
        return not type(self)._TRANSITIONS.get(self.value)

    def can_transition_to(self, target: TransitionEnum) -> bool:
        return target.value in type(self)._TRANSITIONS.get(self.value, frozenset())

    def transition_to(self, target: TransitionEnum) -> TransitionEnum:
        """Return *target* if the move is allowed, else raise :class:`InvalidTransitionError`."""
        if not self.can_transition_to(target):
            raise InvalidTransitionError(f"{type(self).__name__}: {self.value} -> {target.value} is not allowed")
        return target


class PollsatBaseModel(BaseModel):
    """Base for pollsat records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
