"""Merkle inclusion proof models."""

from __future__ import annotations

import enum
from collections.abc import Iterable

from pydantic import Field

from pollsat._crypto.hashing import hash_pair, normalize_leaf
from pollsat.models._base import PollsatBaseModel


class ProofSide(enum.StrEnum):
    """Where the sibling sits relative to the node being folded."""

    LEFT = "left"
    RIGHT = "right"


class ProofStep(PollsatBaseModel):
    side: ProofSide
    sibling: str


def fold_proof_path(leaf: str, path: Iterable[ProofStep]) -> str:
    """Re-derive the root implied by *leaf* and its sibling *path*."""
    current = normalize_leaf(leaf)
    for step in path:
        if step.side is ProofSide.LEFT:
            current = hash_pair(step.sibling, current)
        else:
            current = hash_pair(current, step.sibling)
    return current


class MerkleProof(PollsatBaseModel):
    """Sibling path proving that ``leaf`` belongs to the tree with ``root``.

    Valid only against the root of the tree it was derived from.  A
    single-leaf tree yields an empty ``path``.
    """

    root: str
    path: tuple[ProofStep, ...] = Field(default_factory=tuple)
    leaf: str
    index: int

    def verify(self) -> bool:
        """Check the proof against its own recorded root."""
        return fold_proof_path(self.leaf, self.path) == self.root
