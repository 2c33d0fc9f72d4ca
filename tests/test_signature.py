"""Tests for webhook signature verification."""

from conftest import WEBHOOK_SECRET, sign_legacy, sign_structured

from reftrack.webhooks.signature import (
    REASON_BAD_FORMAT,
    REASON_MISMATCH,
    REASON_MISSING_HEADERS,
    REASON_MISSING_SECRET,
    SignatureVerifier,
    verify_legacy,
)

BODY = b'{"type":"invoice.paid","id":"evt_1"}'


def test_structured_signature_accepted():
    result = SignatureVerifier(WEBHOOK_SECRET).verify(BODY, sign_structured(BODY))
    assert result.ok
    assert result.strategy == "structured"


def test_header_names_are_case_insensitive():
    headers = {k.upper(): v for k, v in sign_structured(BODY).items()}
    assert SignatureVerifier(WEBHOOK_SECRET).verify(BODY, headers).ok


def test_legacy_signature_accepted_with_and_without_version_tag():
    verifier = SignatureVerifier(WEBHOOK_SECRET)

    tagged = verifier.verify(BODY, sign_legacy(BODY))
    bare = verifier.verify(BODY, sign_legacy(BODY, prefix=""))

    assert tagged.ok and tagged.strategy == "legacy"
    assert bare.ok and bare.strategy == "legacy"


def test_structured_headers_fall_back_to_legacy_signature():
    headers = {"webhook-id": "msg_1", **sign_legacy(BODY)}
    result = SignatureVerifier(WEBHOOK_SECRET).verify(BODY, headers)
    assert result.ok
    assert result.strategy == "legacy"


def test_tampered_body_rejected():
    headers = sign_structured(BODY)
    result = SignatureVerifier(WEBHOOK_SECRET).verify(BODY + b" ", headers)
    assert not result.ok
    assert result.reason == REASON_MISMATCH


def test_wrong_secret_rejected():
    other = sign_legacy(BODY, secret="some-other-secret")
    result = SignatureVerifier(WEBHOOK_SECRET).verify(BODY, other)
    assert result.reason == REASON_MISMATCH


def test_missing_secret_rejects_everything():
    for secret in (None, "", "   "):
        result = SignatureVerifier(secret).verify(BODY, sign_legacy(BODY))
        assert result.reason == REASON_MISSING_SECRET


def test_missing_headers_rejected():
    verifier = SignatureVerifier(WEBHOOK_SECRET)
    assert verifier.verify(BODY, {}).reason == REASON_MISSING_HEADERS
    assert verifier.verify(BODY, {"webhook-timestamp": "1700000000"}).reason == REASON_MISSING_HEADERS


def test_unknown_version_tag_is_bad_format():
    headers = sign_legacy(BODY, prefix="v2,")
    assert verify_legacy(BODY, headers["webhook-timestamp"], headers["webhook-signature"], WEBHOOK_SECRET).reason == REASON_BAD_FORMAT


def test_empty_signature_after_tag_is_bad_format():
    assert verify_legacy(BODY, "1700000000", "v1,", WEBHOOK_SECRET).reason == REASON_BAD_FORMAT


def test_timestamp_is_part_of_signed_message():
    headers = sign_legacy(BODY, timestamp="1700000000")
    result = verify_legacy(BODY, "1700000001", headers["webhook-signature"], WEBHOOK_SECRET)
    assert result.reason == REASON_MISMATCH
