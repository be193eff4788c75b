"""Change detection between two sync iterations.

Values are opaque: a head value is the raw content of the branch reference
and a tag snapshot is the raw tag listing. Nothing is parsed, only compared.
"""

from dataclasses import dataclass
from typing import NamedTuple


class PushPlan(NamedTuple):
    """Which pushes an iteration has to perform."""

    push_branches: bool
    push_tags: bool

    @property
    def any(self) -> bool:
        return self.push_branches or self.push_tags


@dataclass(frozen=True)
class SyncSnapshot:
    """The head value and tag listing last pushed successfully.

    Attributes:
        head (bytes | None): Raw branch reference value, None if never observed.
        tags (bytes | None): Raw tag listing, None if never observed.
    """

    head: bytes | None = None
    tags: bytes | None = None


def detect_change(
    prev_head: bytes | None, prev_tags: bytes | None, head: bytes, tags: bytes
) -> PushPlan:
    """Compares the current head and tags against the previous observation."""
    return PushPlan(push_branches=head != prev_head, push_tags=tags != prev_tags)


def detect(previous: SyncSnapshot, head: bytes, tags: bytes) -> PushPlan:
    """Decides the pushes needed to bring the destination up to ``head``/``tags``.

    Args:
        previous (SyncSnapshot): The last successfully pushed state.
        head (bytes): The head value observed in this iteration.
        tags (bytes): The tag listing observed in this iteration.

    Returns:
        PushPlan: Independent decisions for branches and tags.
    """
    return detect_change(previous.head, previous.tags, head, tags)
