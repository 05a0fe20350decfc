"""Tests for Tracker webhook signature verification."""
import hashlib
import hmac

import pytest

from modules.record_sync.exceptions import AuthenticityFailure
from modules.record_sync.signature import (
    CapturedRequest,
    compute_signature,
    handshake_response,
    is_valid_signature,
    verify_request,
)

SECRET = 'shared-secret'
BODY = b'[{"taskId":"T1","addedResponsibles":["W9"]}]'


def reference_hmac(secret, message):
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def test_compute_signature_matches_hmac_sha256():
    assert compute_signature(SECRET, BODY) == reference_hmac(SECRET, BODY)
    assert compute_signature(SECRET, 'abc') == reference_hmac(SECRET, b'abc')


def test_accepts_exact_body_signature():
    assert is_valid_signature(SECRET, BODY, reference_hmac(SECRET, BODY))


def test_any_single_byte_change_is_rejected():
    signature = reference_hmac(SECRET, BODY)
    for i in range(len(BODY)):
        mutated = bytearray(BODY)
        mutated[i] ^= 0x01
        assert not is_valid_signature(SECRET, bytes(mutated), signature)


def test_wrong_secret_is_rejected():
    assert not is_valid_signature('other-secret', BODY, reference_hmac(SECRET, BODY))


def test_reserialized_body_does_not_verify():
    spaced = b'[{"taskId": "T1", "addedResponsibles": ["W9"]}]'
    assert not is_valid_signature(SECRET, spaced, reference_hmac(SECRET, BODY))


def test_verify_request_missing_header_is_400():
    with pytest.raises(AuthenticityFailure) as exc:
        verify_request(SECRET, CapturedRequest(raw_body=BODY, payload=[], signature=None))
    assert exc.value.status == 400


def test_verify_request_mismatch_is_401():
    with pytest.raises(AuthenticityFailure) as exc:
        verify_request(SECRET, CapturedRequest(raw_body=BODY, payload=[], signature='0' * 64))
    assert exc.value.status == 401


def test_verify_request_passes_valid_delivery():
    captured = CapturedRequest(raw_body=BODY, payload=[], signature=reference_hmac(SECRET, BODY))
    verify_request(SECRET, captured)


def test_handshake_is_hmac_of_presented_value_and_deterministic():
    challenge = 'c0ffee-challenge'
    first = handshake_response(SECRET, challenge)
    assert first == reference_hmac(SECRET, challenge.encode())
    assert handshake_response(SECRET, challenge) == first


def test_handshake_payload_detection():
    assert CapturedRequest(b'', {'requestType': 'WebHook secret verification'}).is_handshake
    assert not CapturedRequest(b'', [{'taskId': 'T1'}]).is_handshake
