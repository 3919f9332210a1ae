from __future__ import annotations

import hashlib

import pytest

from pollsat.exceptions import InvalidTransitionError
from pollsat.merkle import BatchState, MerkleAggregator, MerkleTree, verify_proof
from pollsat.models.merkle import ProofSide, ProofStep


def _h(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def test_three_leaf_tree_matches_deployed_construction() -> None:
    ha, hb, hc = _h("a"), _h("b"), _h("c")
    tree = MerkleTree(["a", "b", "c"])

    assert tree.layers == ((ha, hb, hc), (_h(ha + hb), hc), (_h(_h(ha + hb) + hc),))
    assert tree.root == _h(_h(ha + hb) + hc)
    assert tree.depth == 2


def test_hash_form_leaves_are_kept_and_lowercased() -> None:
    digest = _h("vote")
    tree = MerkleTree([digest.upper(), "plain"])

    assert tree.leaves == (digest, _h("plain"))
    assert digest in tree
    assert tree.index_of(digest.upper()) == 0


def test_proof_for_middle_leaf() -> None:
    ha, hb, hc = _h("a"), _h("b"), _h("c")
    tree = MerkleTree(["a", "b", "c"])

    path = tree.get_proof_path(hb)

    assert path == [ProofStep(side=ProofSide.LEFT, sibling=ha), ProofStep(side=ProofSide.RIGHT, sibling=hc)]
    assert verify_proof(path, hb, tree.root)
    assert not verify_proof(path, hb, _h("other root"))
    assert not verify_proof(path, _h("z"), tree.root)


@pytest.mark.parametrize("size", range(1, 10))
def test_every_leaf_proves_inclusion(size: int) -> None:
    hashes = [_h(f"vote-{i}") for i in range(size)]
    tree = MerkleTree(hashes)

    for i, leaf in enumerate(hashes):
        proof = tree.proof(leaf)
        assert proof is not None
        assert proof.index == i
        assert proof.verify()
        assert MerkleAggregator.verify(proof, leaf, tree.root)


def test_single_leaf_tree_has_empty_proof() -> None:
    leaf = _h("only")
    tree = MerkleTree([leaf])

    assert tree.root == leaf
    assert tree.get_proof_path(leaf) == []
    assert verify_proof([], leaf, tree.root)


def test_root_must_be_a_digest() -> None:
    leaf = _h("only")

    assert not verify_proof([], "abc", "abc")
    assert not verify_proof([], leaf, "")
    assert verify_proof([], leaf, leaf.upper())


def test_absent_leaf_has_no_proof() -> None:
    tree = MerkleTree(["a", "b"])

    assert tree.get_proof_path("z") == []
    assert tree.proof("z") is None
    assert "z" not in tree


def test_root_depends_on_order() -> None:
    assert MerkleTree(["a", "b"]).root != MerkleTree(["b", "a"]).root


def test_empty_or_string_input_is_rejected() -> None:
    with pytest.raises(ValueError):
        MerkleTree([])
    with pytest.raises(TypeError):
        MerkleTree("abc")


def test_aggregator_state_machine() -> None:
    aggregator = MerkleAggregator()
    assert aggregator.state is BatchState.EMPTY
    with pytest.raises(InvalidTransitionError):
        aggregator.root()

    tree = aggregator.build(["a", "b", "c"])
    assert aggregator.state is BatchState.BUILT
    assert aggregator.root() == tree.root
    assert aggregator.state is BatchState.ROOTED

    proof = aggregator.proof(_h("c"))
    assert proof is not None and proof.verify()

    with pytest.raises(InvalidTransitionError):
        aggregator.build(["d"])
