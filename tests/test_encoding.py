import struct

import pytest

from circle_chat.common.encoding import WIRE_DOMAIN, encode_message, encode_transmission
from circle_chat.common.errors import ValidationError


def enc(**overrides):
    fields = dict(message_id=0, channel_id=7, is_response=False, is_response_to=None,
                  is_broadcast=False, body="hi", attachments=[], timestamp=5, author="alice")
    fields.update(overrides)
    return encode_message(**fields)


def test_layout():
    expected = (
        struct.pack(">Q", 0)
        + struct.pack(">Q", 7)
        + b"\x00"
        + b"\x00" * 8
        + b"\x00"
        + struct.pack(">I", 2) + b"hi"
        + struct.pack(">I", 0)
        + struct.pack(">Q", 5)
        + struct.pack(">I", 5) + b"alice"
    )
    assert enc() == expected


def test_layout_with_reply_and_attachments():
    data = enc(message_id=3, is_response=True, is_response_to=9, is_broadcast=True,
               attachments=[b"ab", b""])
    assert data[:8] == struct.pack(">Q", 3)
    assert data[16:17] == b"\x01"
    assert data[17:25] == struct.pack(">Q", 9)
    assert data[25:26] == b"\x01"
    rest = data[26 + 4 + 2:]
    assert rest.startswith(struct.pack(">I", 2) + struct.pack(">I", 2) + b"ab" + struct.pack(">I", 0))


def test_deterministic():
    assert enc(attachments=[b"x", b"y"]) == enc(attachments=[b"x", b"y"])


def test_body_length_counts_utf8_bytes():
    data = enc(body="é")
    assert data[26:30] == struct.pack(">I", 2)
    assert data[30:32] == "é".encode("utf-8")


def test_absent_reply_target_encodes_as_zero():
    assert enc(is_response=True, is_response_to=None) == enc(is_response=True, is_response_to=0)


def test_reply_flag_is_encoded():
    assert enc(is_response=False, is_response_to=0) != enc(is_response=True, is_response_to=0)


class TestNoBoundaryCollisions:

    def test_body_and_author(self):
        assert enc(body="ab", author="c") != enc(body="a", author="bc")

    def test_body_and_attachment(self):
        assert enc(body="ab", attachments=[]) != enc(body="a", attachments=[b"b"])

    def test_attachment_split(self):
        assert enc(attachments=[b"abc"]) != enc(attachments=[b"a", b"bc"])

    def test_empty_attachment_is_not_absent(self):
        assert enc(attachments=[]) != enc(attachments=[b""])

    def test_attachment_order(self):
        assert enc(attachments=[b"a", b"b"]) != enc(attachments=[b"b", b"a"])


@pytest.mark.parametrize("field, value", [
    ("channel_id", -1),
    ("channel_id", 2**64),
    ("message_id", 2**64),
    ("timestamp", -5),
    ("is_response_to", 2**64),
])
def test_out_of_range_integers(field, value):
    with pytest.raises(ValidationError) as exc:
        enc(**{field: value})
    assert exc.value.field == field


def test_max_u64_accepted():
    data = enc(channel_id=2**64 - 1)
    assert data[8:16] == b"\xff" * 8


def test_transmission_encoding_is_domain_separated():
    data = encode_transmission(0, 7, False, None, False, b"hi", [], b"\x00" * 8, "alice")
    assert data.startswith(WIRE_DOMAIN)
    assert data != enc(timestamp=0)


def test_transmission_encoding_covers_ciphertexts():
    a = encode_transmission(0, 7, False, None, False, b"c1", [b"a1"], b"t1", "alice")
    b = encode_transmission(0, 7, False, None, False, b"c1", [b"a2"], b"t1", "alice")
    assert a != b


@pytest.mark.parametrize("field,value", [
    ("body", "\ud800"),
    ("author", "\udfff"),
    ("body", b"hi"),
    ("author", None),
])
def test_text_fields_must_be_utf8_strings(field, value):
    with pytest.raises(ValidationError) as exc:
        enc(**{field: value})
    assert exc.value.field == field


def test_transmission_author_must_be_utf8():
    with pytest.raises(ValidationError) as exc:
        encode_transmission(0, 7, False, None, False, b"ct", [], b"ts", "\ud800")
    assert exc.value.field == "author"
