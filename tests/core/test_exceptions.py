"""Tests for govoracle.core.exceptions module."""

from __future__ import annotations

import pytest

from govoracle.core.exceptions import (
    AbiParseError,
    BallotDecodeError,
    ChainConnectionError,
    ConfigException,
    ConfigNotFoundError,
    DatabaseError,
    DecodeError,
    DialError,
    EncryptionFailedError,
    NoBeaconAvailableError,
    OracleException,
    PartialTallyFailure,
    PowerParseError,
    PowerServiceError,
    RoundNotPublishedError,
)


class TestOracleException:
    def test_create_with_message(self):
        exc = OracleException("Something went wrong")
        assert str(exc) == "Something went wrong"
        assert exc.message == "Something went wrong"
        assert exc.details == {}

    def test_to_dict_uses_class_name(self):
        exc = DatabaseError("DB error", {"table": "votes"})
        assert exc.to_dict() == {
            "error": "DatabaseError",
            "message": "DB error",
            "details": {"table": "votes"},
        }

    @pytest.mark.parametrize(
        "exc",
        [
            ConfigException("x"),
            ConfigNotFoundError(1),
            ChainConnectionError(1, "http://node"),
            AbiParseError("governance", "bad"),
            DialError(1, "refused"),
            DecodeError("bad log"),
            PowerParseError("sp_power", "1e18"),
            PowerServiceError("down"),
            NoBeaconAvailableError(["https://a"]),
            EncryptionFailedError(5, "boom"),
            RoundNotPublishedError(7),
            BallotDecodeError("bad"),
            PartialTallyFailure(1, 2, ["0xabc"]),
        ],
    )
    def test_everything_is_an_oracle_exception(self, exc):
        assert isinstance(exc, OracleException)


class TestSpecificErrors:
    def test_config_exception_missing_vars(self):
        exc = ConfigException("Missing", missing_vars=["GOVORACLE_DB_HOST"])
        assert exc.missing_vars == ["GOVORACLE_DB_HOST"]
        assert exc.details == {"missing_vars": ["GOVORACLE_DB_HOST"]}

    def test_chain_connection_error_details(self):
        exc = ChainConnectionError(314, "http://node:1234", "connection refused")
        assert "314" in exc.message
        assert "connection refused" in exc.message
        assert exc.details == {"network_id": 314, "rpc_url": "http://node:1234"}

    def test_decode_error_position(self):
        exc = DecodeError("bad log", block_number=120, log_index=3)
        assert exc.details["block_number"] == 120
        assert exc.details["log_index"] == 3

    def test_power_parse_error_keeps_value(self):
        exc = PowerParseError("developer_power", "-5")
        assert exc.details == {"field": "developer_power", "value": "-5"}

    def test_encryption_failed_counts_attempts(self):
        exc = EncryptionFailedError(5, "invalid point")
        assert exc.attempts == 5
        assert exc.last_error == "invalid point"
        assert "5 attempts" in exc.message

    def test_partial_tally_failure(self):
        exc = PartialTallyFailure(314, 9, ["0xa", "0xb"])
        assert exc.unresolved == ["0xa", "0xb"]
        assert "2 voter(s) unresolved" in exc.message
