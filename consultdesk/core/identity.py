"""Identity of the caller issuing a consult command."""

from __future__ import annotations

import dataclasses

from ..consults.models import IdName


@dataclasses.dataclass(frozen=True)
class ActorIdentity:
    """Directory id and display name of the acting agent."""

    object_id: str
    display_name: str | None = None

    def as_id_name(self) -> IdName:
        return IdName(id=self.object_id, display_name=self.display_name or self.object_id)


__all__ = ["ActorIdentity"]
