"""
Key Custody & Relay Error Unit Tests
====================================
"""

import pytest


class TestKeypairCustody:

    def test_signs_for_held_key(self, payer):
        from src.shared.infrastructure.signer import KeyCustody, KeypairCustody

        custody = KeypairCustody([payer])

        assert isinstance(custody, KeyCustody)
        assert custody.holds(payer.pubkey())
        assert custody.sign(payer.pubkey(), b"msg") == payer.sign_message(b"msg")

    def test_unknown_signer(self, payer):
        from solders.keypair import Keypair
        from src.shared.execution.execution_result import ErrorCode, SigningError
        from src.shared.infrastructure.signer import KeypairCustody

        stranger = Keypair().pubkey()

        with pytest.raises(SigningError) as exc:
            KeypairCustody([payer]).sign(stranger, b"msg")

        assert exc.value.signer == str(stranger)
        assert exc.value.code == ErrorCode.SIGNING_FAILED

    def test_from_base58_secrets(self, payer):
        from src.shared.infrastructure.signer import KeypairCustody

        custody = KeypairCustody.from_base58_secrets([str(payer)])

        assert custody.holds(payer.pubkey())
        assert len(custody) == 1

    def test_repr_hides_keys(self, payer):
        from src.shared.infrastructure.signer import KeypairCustody

        text = repr(KeypairCustody([payer]))

        assert str(payer) not in text
        assert "1 keys" in text


class TestRelayErrors:

    @pytest.mark.parametrize("message,kind", [
        ("Bundle dropped, no connected leader up soon", "NO_LEADER"),
        ("Rate limit exceeded", "RATE_LIMITED"),
        ("bundle exceeded maximum number of transactions", "BUNDLE_TOO_LARGE"),
        ("transaction simulation failed", "REJECTED"),
        ("", "REJECTED"),
    ])
    def test_classification(self, message, kind):
        from src.shared.execution.execution_result import RelayErrorKind, classify_relay_message

        assert classify_relay_message(message) == RelayErrorKind[kind]

    def test_transient_kinds(self):
        from src.shared.execution.execution_result import RelayError, RelayErrorKind

        assert RelayError(RelayErrorKind.NO_LEADER).is_transient
        assert RelayError(RelayErrorKind.RATE_LIMITED).is_transient
        assert not RelayError(RelayErrorKind.REJECTED).is_transient
        assert not RelayError(RelayErrorKind.UNREACHABLE).is_transient

    def test_code_follows_kind(self):
        from src.shared.execution.execution_result import ErrorCode, RelayError

        error = RelayError.from_message("no connected leader up soon")

        assert error.code == ErrorCode.NO_LEADER
        assert "no connected leader" in str(error)

    def test_every_code_has_a_raiser(self):
        from src.shared.execution.execution_result import (
            ErrorCode, InsufficientPoolError, RelayErrorKind, SigningError, UnitTooLargeError,
        )

        raised = {InsufficientPoolError.code, UnitTooLargeError.code, SigningError.code}
        raised |= {kind.error_code for kind in RelayErrorKind}
        raised |= {ErrorCode.TIMEOUT, ErrorCode.UNKNOWN}

        assert set(ErrorCode) == raised


class TestBundleInvariants:

    def test_incentive_must_be_last(self):
        from tests.mocks import FakeTransaction
        from src.shared.models.bundle_types import Bundle, MessageUnit

        units = [
            MessageUnit([], [], [], 1, FakeTransaction("a"), carries_incentive=True),
            MessageUnit([], [], [], 1, FakeTransaction("b")),
        ]
        with pytest.raises(ValueError):
            Bundle(units=units)

    def test_empty_bundle(self):
        from src.shared.models.bundle_types import Bundle

        with pytest.raises(ValueError):
            Bundle(units=[])

    def test_outcome_serializes(self):
        from src.shared.execution.execution_result import ErrorCode
        from src.shared.models.bundle_types import SubmissionOutcome, UnitStatus

        outcome = SubmissionOutcome(
            relay_id="r", sent=True, signatures=["s"],
            unit_statuses=[UnitStatus.PENDING], error_code=ErrorCode.TIMEOUT,
        )

        assert outcome.to_dict() == {
            "relay_id": "r",
            "sent": True,
            "verified": False,
            "signatures": ["s"],
            "unit_statuses": ["PENDING"],
            "error_code": "TIMEOUT",
            "error_message": None,
        }
