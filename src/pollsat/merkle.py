"""Binary Merkle tree over vote hashes.

Construction, compatible with the deployed format:

* every input is normalised to lowercase SHA-256 hex (inputs already in
  that form are kept, anything else is hashed);
* a parent is ``SHA256(left_hex || right_hex)`` over the hex *text*;
* an odd trailing node is promoted unchanged to the next layer.

Leaves and internal nodes share one hash domain and odd nodes are carried
up instead of paired.  Both are known weaknesses of this construction
(second-preimage and tree-shape ambiguity); they are kept so that roots
already anchored on the ledger keep verifying.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence

from pollsat._crypto.hashing import hash_pair, is_hash_form, normalize_leaf
from pollsat.exceptions import InvalidTransitionError
from pollsat.models.merkle import MerkleProof, ProofSide, ProofStep, fold_proof_path


def _build_layers(leaves: tuple[str, ...]) -> tuple[tuple[str, ...], ...]:
    layers: list[tuple[str, ...]] = [leaves]
    current = leaves
    while len(current) > 1:
        parents: list[str] = []
        for i in range(0, len(current), 2):
            if i + 1 < len(current):
                parents.append(hash_pair(current[i], current[i + 1]))
            else:
                parents.append(current[i])
        current = tuple(parents)
        layers.append(current)
    return tuple(layers)


class MerkleTree:
    """Immutable tree built once from an ordered batch of vote hashes.

    The tree depends only on the order of *hashes*.  Duplicate leaves are
    allowed by the construction; :meth:`proof` resolves a leaf to its first
    occurrence.
    """

    __slots__ = ("_leaves", "_layers", "_index")

    def __init__(self, hashes: Sequence[str]) -> None:
        if isinstance(hashes, str):
            raise TypeError("MerkleTree expects a sequence of hashes, not a single string")
        leaves = tuple(normalize_leaf(h) for h in hashes)
        if not leaves:
            raise ValueError("cannot build a Merkle tree from an empty batch")
        self._leaves = leaves
        self._layers = _build_layers(leaves)
        index: dict[str, int] = {}
        for position, leaf in enumerate(leaves):
            index.setdefault(leaf, position)
        self._index = index

    def __repr__(self) -> str:
        return f"MerkleTree(leaves={len(self._leaves)}, root={self.root[:12]}…)"

    def __len__(self) -> int:
        return len(self._leaves)

    def __contains__(self, leaf: object) -> bool:
        return isinstance(leaf, str) and normalize_leaf(leaf) in self._index

    @property
    def leaves(self) -> tuple[str, ...]:
        return self._leaves

    @property
    def layers(self) -> tuple[tuple[str, ...], ...]:
        return self._layers

    @property
    def root(self) -> str:
        return self._layers[-1][0]

    @property
    def depth(self) -> int:
        """Number of hashing levels above the leaves."""
        return len(self._layers) - 1

    def index_of(self, leaf: str) -> int | None:
        """Layer-0 position of *leaf* (hashed if necessary), or ``None``."""
        return self._index.get(normalize_leaf(leaf))

    def get_proof_path(self, leaf: str) -> list[ProofStep]:
        """Sibling path from *leaf* to the root; empty when *leaf* is absent.

        A promoted odd node has no sibling on that layer and contributes
        no step.
        """
        index = self.index_of(leaf)
        if index is None:
            return []

        path: list[ProofStep] = []
        for layer in self._layers[:-1]:
            is_left_child = index % 2 == 0
            sibling_index = index + 1 if is_left_child else index - 1
            if sibling_index < len(layer):
                path.append(
                    ProofStep(
                        side=ProofSide.RIGHT if is_left_child else ProofSide.LEFT,
                        sibling=layer[sibling_index],
                    )
                )
            index //= 2
        return path

    def proof(self, leaf: str) -> MerkleProof | None:
        """Inclusion proof for *leaf*, or ``None`` when it is not a member."""
        index = self.index_of(leaf)
        if index is None:
            return None
        return MerkleProof(
            root=self.root,
            path=tuple(self.get_proof_path(leaf)),
            leaf=self._leaves[index],
            index=index,
        )


def verify_proof(proof: MerkleProof | Sequence[ProofStep], leaf: str, root: str) -> bool:
    """Fold *proof* from *leaf* and compare with *root*.

    Accepts either a :class:`MerkleProof` (its ``path`` is used; its
    recorded root is ignored in favour of *root*) or a bare step sequence.
    A *root* that is not a SHA-256 hex digest never verifies.
    """
    if not is_hash_form(root):
        return False
    path = proof.path if isinstance(proof, MerkleProof) else proof
    return fold_proof_path(leaf, path) == root.lower()


class BatchState(enum.StrEnum):
    EMPTY = "empty"
    BUILT = "built"
    ROOTED = "rooted"


class MerkleAggregator:
    """One aggregation batch: ``EMPTY → BUILT → ROOTED``.

    :meth:`build` fixes the batch, :meth:`root` publishes its commitment.
    A new batch needs a new aggregator.
    """

    def __init__(self) -> None:
        self._state = BatchState.EMPTY
        self._tree: MerkleTree | None = None

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def tree(self) -> MerkleTree:
        if self._tree is None:
            raise InvalidTransitionError("batch has not been built")
        return self._tree

    def build(self, hashes: Sequence[str]) -> MerkleTree:
        if self._state is not BatchState.EMPTY:
            raise InvalidTransitionError(f"batch already {self._state.value}; use a new aggregator")
        self._tree = MerkleTree(hashes)
        self._state = BatchState.BUILT
        return self._tree

    def root(self) -> str:
        tree = self.tree
        self._state = BatchState.ROOTED
        return tree.root

    def proof(self, leaf: str) -> MerkleProof | None:
        return self.tree.proof(leaf)

    @staticmethod
    def verify(proof: MerkleProof | Sequence[ProofStep], leaf: str, root: str) -> bool:
        return verify_proof(proof, leaf, root)
