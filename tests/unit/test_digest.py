"""
Unit tests for digest primitives and salted hashing.

These tests verify hashing utilities without external dependencies.
"""

import base64
import hashlib
import hmac

import pytest

from statesync.errors import UnsupportedAlgorithmError
from statesync.hashing.digest import (
    GENESIS_HASH,
    HashResult,
    constant_time_equals,
    digest,
    generate_salt,
    hash_chain,
    hash_directory,
    hash_file,
    hash_id,
    hash_value,
    hmac_hash,
    sha256,
    sha384,
    sha512,
    verify,
)
from statesync.hashing.layered import layered_hash
from statesync.hashing.merkle import merkle_root


class TestDigest:
    """Tests for digest() and the SHA-2 wrappers."""
    
    def test_known_sha256_vector(self):
        """Test against the published SHA-256 digest of 'abc'."""
        assert sha256("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    
    def test_lengths_per_algorithm(self):
        """Test hex digest lengths for each algorithm."""
        assert len(sha256("x")) == 64
        assert len(sha384("x")) == 96
        assert len(sha512("x")) == 128
    
    def test_bytes_and_str_agree(self):
        """Test that str input is hashed as UTF-8."""
        assert digest("héllo") == digest("héllo".encode("utf-8"))
    
    def test_base64_encodings(self):
        """Test base64 and base64url output."""
        raw = hashlib.sha256(b"data").digest()
        
        import base64
        assert digest("data", encoding="base64") == base64.b64encode(raw).decode("ascii")
        assert digest("data", encoding="base64url") == base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
    
    def test_unsupported_algorithm_rejected(self):
        """Test that an unknown algorithm raises before hashing."""
        with pytest.raises(UnsupportedAlgorithmError):
            digest("data", "md5")
    
    def test_unsupported_algorithm_is_value_error(self):
        """Test that callers catching ValueError still catch it."""
        with pytest.raises(ValueError):
            digest("data", "sha1")
    
    def test_unsupported_encoding_rejected(self):
        """Test that an unknown encoding raises."""
        with pytest.raises(ValueError):
            digest("data", encoding="base32")


class TestSalts:
    """Tests for generate_salt() and constant_time_equals()."""
    
    def test_salt_length(self):
        """Test that the salt is hex of the requested byte length."""
        salt = generate_salt(16)
        assert len(salt) == 32
        int(salt, 16)
    
    def test_salts_differ(self):
        """Test that two salts are not equal."""
        assert generate_salt() != generate_salt()
    
    def test_constant_time_equals(self):
        """Test constant-time comparison results."""
        assert constant_time_equals("abc", "abc")
        assert not constant_time_equals("abc", "abd")
        assert not constant_time_equals("abc", "abcd")


class TestHashValue:
    """Tests for hash_value() and verify()."""
    
    def test_single_iteration_matches_manual(self):
        """Test that one iteration hashes 'data:salt' once."""
        result = hash_value("secret", algorithm="sha256", iterations=1, salt="pepper")
        
        assert result.hash == hashlib.sha256(b"secret:pepper").hexdigest()
        assert result.algorithm == "sha256"
        assert result.iterations == 1
        assert result.salt == "pepper"
        assert result.timestamp > 0
    
    def test_iterations_rehash_hex_digest(self):
        """Test that each extra iteration re-hashes the previous hex digest."""
        result = hash_value("secret", iterations=3, salt="s")
        
        expected = "secret:s"
        for _ in range(3):
            expected = hashlib.sha256(expected.encode("utf-8")).hexdigest()
        assert result.hash == expected
    
    def test_random_salt_recorded(self):
        """Test that an omitted salt is generated and recorded."""
        result = hash_value("secret", iterations=10)
        
        assert len(result.salt) == 64
        assert verify("secret", result).valid
    
    def test_verify_rejects_wrong_input(self):
        """Test that verification fails for different data."""
        result = hash_value("secret", algorithm="sha512", iterations=5)
        
        verification = verify("Secret", result)
        assert verification.valid is False
        assert verification.result is result
    
    def test_verify_rejects_tampered_hash(self):
        """Test that verification fails for a modified hash."""
        result = hash_value("secret", iterations=5)
        tampered = HashResult.from_dict(dict(result.to_dict(), hash="0" * 64))
        
        assert not verify("secret", tampered).valid
    
    def test_layered_algorithm_delegates(self):
        """Test that 'layered' uses iterations as base rounds."""
        result = hash_value("secret", algorithm="layered", iterations=3, salt="s")
        
        assert result.hash == layered_hash("secret", "s", 3)
        assert verify("secret", result).valid
    
    def test_result_round_trips_through_dict(self):
        """Test HashResult serialization."""
        result = hash_value("x", iterations=2, salt="abc")
        
        assert HashResult.from_dict(result.to_dict()) == result
    
    def test_base64_encoding_of_final_digest(self):
        """Test that a non-hex encoding re-encodes the final iterated digest."""
        hex_result = hash_value("secret", iterations=3, salt="s")
        b64_result = hash_value("secret", iterations=3, salt="s", encoding="base64")
        url_result = hash_value("secret", iterations=3, salt="s", encoding="base64url")
        
        raw = bytes.fromhex(hex_result.hash)
        assert b64_result.hash == base64.b64encode(raw).decode("ascii")
        assert url_result.hash == base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
        assert b64_result.encoding == "base64"
    
    def test_verify_uses_recorded_encoding(self):
        """Test that base64 hashes verify, including after a dict round trip."""
        result = hash_value("secret", algorithm="sha384", iterations=4, encoding="base64url")
        restored = HashResult.from_dict(result.to_dict())
        
        assert verify("secret", restored).valid
        assert not verify("Secret", restored).valid
    
    def test_unsupported_hash_encoding(self):
        """Test that hash_value rejects unknown encodings before hashing."""
        with pytest.raises(ValueError):
            hash_value("x", iterations=1, salt="s", encoding="base32")
    
    def test_unsupported_algorithm(self):
        """Test that hash_value validates the algorithm."""
        with pytest.raises(UnsupportedAlgorithmError):
            hash_value("x", algorithm="whirlpool", iterations=1)


class TestHmacAndChain:
    """Tests for hmac_hash() and hash_chain()."""
    
    def test_hmac_matches_stdlib(self):
        """Test HMAC output."""
        expected = hmac.new(b"key", b"message", "sha384").hexdigest()
        assert hmac_hash("message", "key", "sha384") == expected
    
    def test_chain_links_commit_to_predecessor(self):
        """Test that each link is sha256('prev:item')."""
        chain, final = hash_chain(["a", "b"])
        
        first = sha256(f"{GENESIS_HASH}:a")
        second = sha256(f"{first}:b")
        assert chain == [first, second]
        assert final == second
    
    def test_empty_chain(self):
        """Test that an empty chain returns the previous hash."""
        chain, final = hash_chain([], previous_hash="abc")
        
        assert chain == []
        assert final == "abc"
    
    def test_chain_is_order_sensitive(self):
        """Test that reordering items changes the final hash."""
        assert hash_chain(["a", "b"])[1] != hash_chain(["b", "a"])[1]


class TestHashId:
    """Tests for hash_id()."""
    
    def test_format(self):
        """Test prefix and 12 hex characters."""
        value = hash_id("customer")
        prefix, _, suffix = value.partition("_")
        
        assert prefix == "customer"
        assert len(suffix) == 12
        int(suffix, 16)
    
    def test_unique(self):
        """Test that ids do not repeat."""
        ids = {hash_id() for _ in range(1000)}
        assert len(ids) == 1000


class TestFileHashing:
    """Tests for hash_file() and hash_directory()."""
    
    def test_hash_file(self, tmp_path):
        """Test file digest and size."""
        path = tmp_path / "a.txt"
        path.write_bytes(b"hello world")
        
        result = hash_file(path)
        
        assert result["hash"] == hashlib.sha256(b"hello world").hexdigest()
        assert result["size"] == 11
        assert result["algorithm"] == "sha256"
    
    def test_hash_directory_skips_dot_dirs(self, tmp_path):
        """Test that hidden directories are not hashed."""
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b.txt").write_text("b")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config").write_text("ignored")
        
        result = hash_directory(tmp_path)
        
        assert result["file_count"] == 2
        assert all(".git" not in f["path"] for f in result["files"])
    
    def test_hash_directory_roots(self, tmp_path):
        """Test combined hash and Merkle root over sorted files."""
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "a.txt").write_text("a")
        
        result = hash_directory(tmp_path)
        
        files = result["files"]
        assert [f["path"] for f in files] == sorted(f["path"] for f in files)
        combined = "\n".join(f"{f['path']}:{f['hash']}" for f in files)
        assert result["combined_hash"] == sha256(combined)
        assert result["merkle_root"] == merkle_root([f["hash"] for f in files])
    
    def test_directory_hash_changes_with_content(self, tmp_path):
        """Test that editing a file changes the combined hash."""
        (tmp_path / "a.txt").write_text("a")
        before = hash_directory(tmp_path)["combined_hash"]
        
        (tmp_path / "a.txt").write_text("changed")
        
        assert hash_directory(tmp_path)["combined_hash"] != before
