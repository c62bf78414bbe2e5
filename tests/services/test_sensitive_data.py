"""
Unit tests for the sensitive-data detectors.
"""
from apiwatch.schemas import ResponseMetadata
from apiwatch.services.sensitive_data import metadata_text, scan_text


def _types(text):
    return {m.type: m.count for m in scan_text(text)}


def test_detects_json_password_field():
    assert _types('{"password": "abc123"}') == {"SECRET": 1}


def test_detects_assignment_style_secrets():
    found = _types("api_key='k-123' token=\"t-456\"")
    assert found["SECRET"] == 2


def test_detects_jwt_shaped_string():
    jwt = (
        "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
        "eyJzdWIiOiIxMjM0NTY3ODkwIn0."
        "SflKxwRJSMeKKF2QT4fwpMeJf36POk6yJV_adQssw5c"
    )
    assert "SECRET" in _types(f"Authorization: Bearer {jwt}")


def test_detects_pii():
    found = _types("contact jane@example.com, ssn 123-45-6789, card 4111 1111 1111 1111")
    assert found["EMAIL"] == 1
    assert found["SSN"] == 1
    assert found["CREDIT_CARD"] == 1


def test_clean_text_has_no_matches():
    assert scan_text('{"status": "ok", "items": 3}') == []


def test_metadata_text_is_the_body_sample():
    metadata = ResponseMetadata(
        headers={"content-type": "application/json", "x-request-id": "9f2c"},
        response_body_sample='{"email": "a@b.io"}',
    )

    assert metadata_text(metadata) == '{"email": "a@b.io"}'


def test_header_values_are_not_scanned():
    metadata = ResponseMetadata(
        headers={"x-ratelimit-reset": "1697712345", "content-length": "4111111111111111"},
        response_body_sample='{"ok": true}',
    )

    assert scan_text(metadata_text(metadata)) == []


def test_metadata_text_empty():
    assert metadata_text(ResponseMetadata()) is None
    assert metadata_text(ResponseMetadata(headers={"x-ratelimit-reset": "1697712345"})) is None
