import json

import pytest

from shroud.core.errors import ValidationError
from shroud.core.payloads import (
    MAX_MESSAGE_CHARS,
    ContactAcceptedPayload,
    ContactRequestPayload,
    decode_json,
    encode_payload,
    parse_payload,
)


def test_contact_request_wire_format() -> None:
    payload = ContactRequestPayload(from_handle="17", to_handle="32", request_id="r1", message="hi")

    assert json.loads(encode_payload(payload)) == {
        "type": "contact_request",
        "fromHandle": "17",
        "toHandle": "32",
        "requestId": "r1",
        "message": "hi",
    }


def test_optional_message_is_omitted() -> None:
    payload = ContactRequestPayload(from_handle="17", to_handle="32", request_id="r1")

    assert "message" not in payload.to_dict()


def test_parse_contact_accepted() -> None:
    parsed = parse_payload({"type": "contact_accepted", "fromHandle": "32", "toHandle": "17", "requestId": "r1"})

    assert parsed == ContactAcceptedPayload(from_handle="32", to_handle="17", request_id="r1")


def test_unknown_type_is_ignored() -> None:
    assert parse_payload({"type": "call_offer", "sdp": "..."}) is None


def test_known_type_with_missing_field_is_invalid() -> None:
    with pytest.raises(ValidationError):
        parse_payload({"type": "contact_request", "fromHandle": "17", "requestId": "r1"})


def test_non_string_message_is_invalid() -> None:
    with pytest.raises(ValidationError):
        parse_payload({"type": "contact_request", "fromHandle": "17", "toHandle": "32", "requestId": "r1", "message": 5})


def test_long_message_is_truncated() -> None:
    parsed = parse_payload(
        {
            "type": "contact_request",
            "fromHandle": "17",
            "toHandle": "32",
            "requestId": "r1",
            "message": "x" * (MAX_MESSAGE_CHARS + 50),
        }
    )

    assert len(parsed.message) == MAX_MESSAGE_CHARS


def test_decode_json_skips_plain_chat_text() -> None:
    assert decode_json("see you at 9") is None
    assert decode_json("[1, 2]") is None
    assert decode_json('{"no": "type"}') is None
    assert decode_json('{"type": "contact_request"}') == {"type": "contact_request"}
