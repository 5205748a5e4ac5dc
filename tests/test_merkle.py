"""Tests for the Merkle engine: hashers, tree construction, proofs, verification.

Covers:
- Hasher registry and algorithm handling
- Tree shape: empty, single, odd and even leaf counts
- Proof generation by index and by digest, duplicate-last siblings
- Verification round trips, tamper detection and fail-closed inputs
"""

from __future__ import annotations

import hashlib
from concurrent.futures import ThreadPoolExecutor

import pytest

from merkle_allowlist.exceptions import (
    InvalidInputError,
    LeafNotFoundError,
    UnsupportedHashAlgorithm,
)
from merkle_allowlist.hashers import HashlibHasher, available_algorithms, get_hasher
from merkle_allowlist.merkle import MerkleTree, ProofStep, Side, verify_proof

EMAILS = ["example1@mail.com", "example2@mail.com", "example3@mail.com"]


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _items(n: int) -> list[bytes]:
    return [f"record-{i}".encode() for i in range(n)]


# ---------------------------------------------------------------------------
# Hashers
# ---------------------------------------------------------------------------


class TestHashers:
    def test_default_is_sha256(self):
        hasher = get_hasher()
        assert hasher.name == "sha256"
        assert hasher.digest_size == 32
        assert hasher.hash(b"abc") == sha256(b"abc")

    def test_empty_input_has_fixed_length_digest(self):
        digest = get_hasher().hash(b"")
        assert digest == sha256(b"")
        assert len(digest) == 32

    def test_hash_pair_is_left_then_right(self):
        hasher = get_hasher()
        left, right = sha256(b"L"), sha256(b"R")
        assert hasher.hash_pair(left, right) == sha256(left + right)
        assert hasher.hash_pair(left, right) != hasher.hash_pair(right, left)

    def test_names_are_normalized_and_shared(self):
        assert get_hasher("SHA-256") is get_hasher("sha256")
        assert get_hasher("sha3-256").name == "sha3_256"

    @pytest.mark.parametrize(
        "spelling,name",
        [
            ("SHA-256", "sha256"),
            ("sha_256", "sha256"),
            ("Sha256", "sha256"),
            ("SHA-512", "sha512"),
            ("SHA3-256", "sha3_256"),
            ("sha3256", "sha3_256"),
            ("BLAKE2b", "blake2b"),
        ],
    )
    def test_spellings_resolve_to_hashlib_name(self, spelling, name):
        assert HashlibHasher(spelling).name == name
        assert get_hasher(spelling) is get_hasher(name)

    @pytest.mark.parametrize("name", ["md5", "sha1", "crc32", "shake_128"])
    def test_unsupported_algorithms_rejected(self, name):
        with pytest.raises(UnsupportedHashAlgorithm):
            get_hasher(name)

    @pytest.mark.parametrize("name", available_algorithms())
    def test_every_listed_algorithm_works(self, name):
        hasher = get_hasher(name)
        assert len(hasher.hash(b"x")) == hasher.digest_size

    def test_non_bytes_rejected(self):
        with pytest.raises(InvalidInputError):
            get_hasher().hash("not bytes")

    def test_bytearray_accepted(self):
        assert get_hasher().hash(bytearray(b"abc")) == sha256(b"abc")

    def test_hashers_compare_by_name(self):
        assert HashlibHasher("sha256") == get_hasher("sha256")
        assert HashlibHasher("sha256") != HashlibHasher("sha512")


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestMerkleTreeBuild:
    def test_empty_tree_has_deterministic_root(self):
        tree = MerkleTree.build([])
        assert tree.root == sha256(b"")
        assert tree.leaf_count == 0
        assert tree.height == 0
        assert tree.leaves == ()

    def test_empty_tree_root_layer_holds_sentinel(self):
        tree = MerkleTree.build([])
        assert tree.layers == ((sha256(b""),),)
        assert tree.layers[-1] == (tree.root,)
        assert len(tree) == 0
        assert sha256(b"") not in tree

    def test_empty_tree_differs_from_tree_over_empty_item(self):
        # build([b""]) has the same root, but one leaf.
        empty, single = MerkleTree.build([]), MerkleTree.build([b""])
        assert empty.root == single.root
        assert empty != single

    def test_single_leaf(self):
        tree = MerkleTree.build([b"hello"])
        assert tree.root == sha256(b"hello")
        assert tree.height == 0
        assert len(tree) == 1

    def test_two_leaves(self):
        tree = MerkleTree.build([b"leaf-0", b"leaf-1"])
        h0, h1 = sha256(b"leaf-0"), sha256(b"leaf-1")
        assert tree.root == sha256(h0 + h1)

    def test_three_leaves_duplicates_last(self):
        tree = MerkleTree.build([b"a", b"b", b"c"])
        h0, h1, h2 = sha256(b"a"), sha256(b"b"), sha256(b"c")
        left = sha256(h0 + h1)
        right = sha256(h2 + h2)
        assert tree.root == sha256(left + right)

    @pytest.mark.parametrize(
        "n,height", [(1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4), (17, 5)]
    )
    def test_height_is_ceil_log2(self, n, height):
        assert MerkleTree.build(_items(n)).height == height

    def test_layer_widths_halve_rounding_up(self):
        tree = MerkleTree.build(_items(5))
        assert [len(layer) for layer in tree.layers] == [5, 3, 2, 1]
        assert tree.layers[-1] == (tree.root,)
        assert tree.layers[0] == tree.leaves

    def test_deterministic(self):
        assert MerkleTree.build(_items(7)).root == MerkleTree.build(_items(7)).root
        assert MerkleTree.build(_items(7)) == MerkleTree.build(_items(7))

    def test_order_sensitive(self):
        assert MerkleTree.build([b"a", b"b"]).root != MerkleTree.build([b"b", b"a"]).root

    def test_from_leaves_matches_build(self):
        leaves = [sha256(item) for item in _items(6)]
        assert MerkleTree.from_leaves(leaves) == MerkleTree.build(_items(6))

    def test_from_leaves_rejects_wrong_length(self):
        with pytest.raises(InvalidInputError):
            MerkleTree.from_leaves([sha256(b"a"), b"short"])

    def test_non_bytes_items_rejected(self):
        with pytest.raises(InvalidInputError):
            MerkleTree.build(["a string"])

    def test_alternate_hasher(self):
        hasher = get_hasher("sha3_256")
        tree = MerkleTree.build([b"a", b"b"], hasher)
        ha, hb = hashlib.sha3_256(b"a").digest(), hashlib.sha3_256(b"b").digest()
        assert tree.root == hashlib.sha3_256(ha + hb).digest()
        assert tree.hasher is hasher
        assert tree.root != MerkleTree.build([b"a", b"b"]).root

    def test_sha512_digest_size(self):
        tree = MerkleTree.build(_items(3), get_hasher("sha512"))
        assert len(tree.root) == 64

    def test_index_of_and_contains(self):
        tree = MerkleTree.build([b"a", b"b", b"a"])
        assert tree.index_of(sha256(b"a")) == 0
        assert tree.index_of(sha256(b"b")) == 1
        assert sha256(b"b") in tree
        assert sha256(b"z") not in tree
        assert "a" not in tree
        with pytest.raises(LeafNotFoundError):
            tree.index_of(sha256(b"z"))

    def test_str_lists_root_first(self):
        tree = MerkleTree.build(_items(3))
        lines = str(tree).splitlines()
        assert lines[0] == tree.hex_root
        assert len(lines) == sum(len(layer) for layer in tree.layers)
        assert lines[-1].strip() == tree.leaves[-1].hex()

    def test_hex_root(self):
        tree = MerkleTree.build(_items(4))
        assert tree.hex_root == tree.root.hex()
        assert len(tree.hex_root) == 64


# ---------------------------------------------------------------------------
# Proof generation
# ---------------------------------------------------------------------------


class TestMerkleProof:
    def test_proof_single_leaf_is_empty(self):
        tree = MerkleTree.build([b"only"])
        proof = tree.get_proof(0)
        assert proof == ()
        assert verify_proof(sha256(b"only"), proof, tree.root)

    def test_proof_two_leaves_left(self):
        tree = MerkleTree.build([b"L", b"R"])
        proof = tree.get_proof(0)
        assert proof == (ProofStep(sha256(b"R"), Side.RIGHT),)
        assert verify_proof(sha256(b"L"), proof, tree.root)

    def test_proof_two_leaves_right(self):
        tree = MerkleTree.build([b"L", b"R"])
        proof = tree.get_proof(1)
        assert proof == (ProofStep(sha256(b"L"), Side.LEFT),)
        assert verify_proof(sha256(b"R"), proof, tree.root)

    def test_odd_tail_sibling_is_itself(self):
        tree = MerkleTree.build([b"a", b"b", b"c"])
        h2 = sha256(b"c")
        proof = tree.get_proof(2)
        assert proof[0] == ProofStep(h2, Side.RIGHT)
        assert proof[1] == ProofStep(sha256(sha256(b"a") + sha256(b"b")), Side.LEFT)

    @pytest.mark.parametrize("n", [3, 5, 6, 7, 11, 17])
    def test_odd_shapes_round_trip_every_index(self, n):
        items = _items(n)
        tree = MerkleTree.build(items)
        for i, item in enumerate(items):
            proof = tree.get_proof(i)
            assert len(proof) == tree.height
            assert verify_proof(sha256(item), proof, tree.root), f"Proof failed for leaf {i}"

    def test_proof_by_digest_matches_index(self):
        tree = MerkleTree.build(_items(6))
        assert tree.get_proof(sha256(b"record-4")) == tree.get_proof(4)

    def test_duplicate_digest_resolves_to_first(self):
        tree = MerkleTree.build([b"x", b"y", b"x", b"z"])
        assert tree.get_proof(sha256(b"x")) == tree.get_proof(0)
        assert tree.get_proof(sha256(b"x")) != tree.get_proof(2)

    def test_proof_is_deterministic(self):
        assert MerkleTree.build(_items(9)).get_proof(5) == MerkleTree.build(_items(9)).get_proof(5)

    def test_out_of_range_raises(self):
        tree = MerkleTree.build([b"x"])
        with pytest.raises(LeafNotFoundError):
            tree.get_proof(1)
        with pytest.raises(LeafNotFoundError):
            tree.get_proof(-1)

    def test_empty_tree_has_no_proofs(self):
        with pytest.raises(LeafNotFoundError):
            MerkleTree.build([]).get_proof(0)

    def test_absent_digest_raises(self):
        tree = MerkleTree.build(_items(4))
        with pytest.raises(LeafNotFoundError):
            tree.get_proof(sha256(b"never inserted"))

    @pytest.mark.parametrize("target", ["record-0", 1.0, True, None])
    def test_bad_target_type_raises(self, target):
        tree = MerkleTree.build(_items(4))
        with pytest.raises(InvalidInputError):
            tree.get_proof(target)

    def test_hex_proof(self):
        tree = MerkleTree.build([b"L", b"R"])
        assert tree.get_hex_proof(0) == [{"hash": sha256(b"R").hex(), "side": "right"}]

    def test_concurrent_readers(self):
        items = _items(33)
        tree = MerkleTree.build(items)

        def check(i: int) -> bool:
            return verify_proof(sha256(items[i]), tree.get_proof(i), tree.root)

        with ThreadPoolExecutor(max_workers=8) as pool:
            assert all(pool.map(check, range(len(items))))


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerifyProof:
    def test_email_scenario(self):
        items = [e.encode() for e in EMAILS]
        tree = MerkleTree.build(items)
        h = [sha256(i) for i in items]
        expected_root = sha256(sha256(h[0] + h[1]) + sha256(h[2] + h[2]))
        assert tree.root == expected_root

        proof = tree.get_proof(1)
        assert len(proof) == 2
        assert verify_proof(sha256(b"example2@mail.com"), proof, expected_root)
        assert not verify_proof(sha256(b"x@mail.com"), proof, expected_root)

    def test_tree_verify_uses_own_root_and_hasher(self):
        tree = MerkleTree.build(_items(5), get_hasher("blake2b"))
        leaf = tree.leaf(3)
        assert tree.verify(tree.get_proof(3), leaf)
        assert not tree.verify(tree.get_proof(3), leaf, root=b"\x00" * 64)

    def test_wrong_root(self):
        tree = MerkleTree.build([b"data", b"other"])
        assert not verify_proof(sha256(b"data"), tree.get_proof(0), b"\x00" * 32)

    def test_every_single_bit_flip_detected(self):
        items = _items(7)
        tree = MerkleTree.build(items)
        leaf = sha256(items[6])
        proof = tree.get_proof(6)
        for s, step in enumerate(proof):
            for bit in range(len(step.sibling) * 8):
                tampered = bytearray(step.sibling)
                tampered[bit // 8] ^= 1 << (bit % 8)
                bad = list(proof)
                bad[s] = ProofStep(bytes(tampered), step.side)
                assert not verify_proof(leaf, bad, tree.root)

    def test_sibling_from_elsewhere_rejected(self):
        tree = MerkleTree.build(_items(8))
        proof = list(tree.get_proof(0))
        proof[1] = tree.get_proof(7)[1]
        assert not verify_proof(tree.leaf(0), proof, tree.root)

    def test_flipped_side_rejected(self):
        tree = MerkleTree.build(_items(4))
        proof = [
            ProofStep(step.sibling, Side.LEFT if step.side is Side.RIGHT else Side.RIGHT)
            for step in tree.get_proof(1)
        ]
        assert not verify_proof(tree.leaf(1), proof, tree.root)

    def test_non_member_fails_against_every_proof(self):
        tree = MerkleTree.build(_items(5))
        outsider = sha256(b"outsider")
        for i in range(5):
            assert not verify_proof(outsider, tree.get_proof(i), tree.root)

    def test_truncated_and_extended_proofs_fail(self):
        tree = MerkleTree.build(_items(8))
        proof = tree.get_proof(2)
        assert not verify_proof(tree.leaf(2), proof[:-1], tree.root)
        assert not verify_proof(tree.leaf(2), proof + proof[-1:], tree.root)

    def test_empty_proof_only_matches_leaf_itself(self):
        leaf = sha256(b"x")
        assert verify_proof(leaf, [], leaf)
        assert not verify_proof(leaf, [], sha256(b"y"))

    def test_mismatched_hasher_does_not_verify(self):
        tree = MerkleTree.build(_items(4))
        leaf = tree.leaf(0)
        assert not verify_proof(leaf, tree.get_proof(0), tree.root, get_hasher("sha3_256"))

    def test_raw_tuples_and_string_sides_accepted(self):
        tree = MerkleTree.build(_items(4))
        proof = [(step.sibling, step.side.value) for step in tree.get_proof(2)]
        assert verify_proof(tree.leaf(2), proof, tree.root)

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda p: [(b"short", Side.LEFT)] + p,
            lambda p: [(p[0].sibling, "up")] + p[1:],
            lambda p: [42] + p,
            lambda p: [("ab" * 32, Side.LEFT)] + p[1:],
            lambda p: None,
            lambda p: 7,
        ],
    )
    def test_malformed_proofs_fail_closed(self, mutate):
        tree = MerkleTree.build(_items(4))
        proof = mutate(list(tree.get_proof(0)))
        assert verify_proof(tree.leaf(0), proof, tree.root) is False

    @pytest.mark.parametrize("leaf,root", [(b"short", None), ("not-bytes", None), (None, b"x")])
    def test_malformed_leaf_or_root_fails_closed(self, leaf, root):
        tree = MerkleTree.build(_items(2))
        assert verify_proof(leaf, tree.get_proof(0), root or tree.root) is False
