"""Tests for input validators and Argon2 password hashing."""

import pytest

from relaychat.auth.argon2_utils import hash_password, verify_password
from relaychat.auth.validation import is_valid_message, is_valid_password, is_valid_username
from relaychat.exceptions import AuthenticationError


class TestUsernameValidation:
    @pytest.mark.parametrize("username", ["bob", "alice_01", "A" * 50])
    def test_valid(self, username: str) -> None:
        assert is_valid_username(username)

    @pytest.mark.parametrize("username", ["ab", "A" * 51, "bad name", "semi;colon", ""])
    def test_invalid(self, username: str) -> None:
        assert not is_valid_username(username)


class TestPasswordValidation:
    def test_bounds(self) -> None:
        assert not is_valid_password("12345")
        assert is_valid_password("123456")
        assert is_valid_password("x" * 128)
        assert not is_valid_password("x" * 129)


class TestMessageValidation:
    def test_bounds(self) -> None:
        assert not is_valid_message("")
        assert is_valid_message("x")
        assert is_valid_message("x" * 250)
        assert not is_valid_message("x" * 251)

    def test_non_string(self) -> None:
        assert not is_valid_message(42)  # type: ignore[arg-type]


class TestArgon2:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("correct horse")

        assert hashed.startswith("$argon2id$")
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_verify_against_garbage_hash(self) -> None:
        assert not verify_password("anything", "not-a-hash")

    def test_hash_requires_string(self) -> None:
        with pytest.raises(AuthenticationError):
            hash_password(None)  # type: ignore[arg-type]
