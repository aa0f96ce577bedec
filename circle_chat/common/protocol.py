import json
import re
from typing import Any, Dict, IO, Iterable, Iterator, Optional

from circle_chat.common.errors import WireFormatError

ENC = "utf-8"   # encoding for JSON text
DELIM = "\n"    # one record per line

# Wire record keys, in the order they are written.
WIRE_KEYS = (
    "message_id", "channel_id", "is_response", "is_response_to", "is_broadcast",
    "body", "attachments", "timestamp", "author", "signature",
)

# Largest integer a JSON reader using IEEE doubles represents exactly.
JSON_SAFE_MAX = 2**53 - 1
U64_MAX = 2**64 - 1
U64_DIGITS = len(str(U64_MAX))

_HEX = re.compile(r"(?:[0-9a-f]{2})*")


def to_hex(data: bytes) -> str:
    ''' This function encodes bytes as a lowercase hex string '''
    return data.hex()


def from_hex(value: Any, key: str) -> bytes:
    ''' This function decodes a lowercase hex string from a wire record '''
    if not isinstance(value, str) or not _HEX.fullmatch(value):
        raise WireFormatError("expected a lowercase hex string", key)
    return bytes.fromhex(value)


def json_u64(value: int):
    '''
    The function returns value as it is written in a wire record:
    a JSON number when it is exactly representable, otherwise a decimal string.
    '''
    return value if value <= JSON_SAFE_MAX else str(value)


def read_u64(record: Dict[str, Any], key: str) -> int:
    value = record.get(key)
    if isinstance(value, str) and value.isascii() and value.isdigit():
        if len(value) > U64_DIGITS:
            raise WireFormatError(f"numeric string of {len(value)} digits is too long", key)
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise WireFormatError("expected an unsigned integer or numeric string", key)
    if not 0 <= value <= U64_MAX:
        raise WireFormatError("outside the unsigned 64-bit range", key)
    return value


def read_optional_u64(record: Dict[str, Any], key: str) -> Optional[int]:
    if record.get(key) is None:
        return None
    return read_u64(record, key)


def read_bool(record: Dict[str, Any], key: str) -> bool:
    value = record.get(key)
    if not isinstance(value, bool):
        raise WireFormatError("expected true or false", key)
    return value


def read_str(record: Dict[str, Any], key: str) -> str:
    value = record.get(key)
    if not isinstance(value, str):
        raise WireFormatError("expected a string", key)
    try:
        value.encode(ENC)
    except UnicodeEncodeError as e:
        raise WireFormatError("not encodable as UTF-8", key) from e
    return value


def dump_record(record: Dict[str, Any]) -> str:
    '''
    The function serializes a wire record to one line of JSON with keys in wire order.
    Input:
        - record: dict returned by messages.package_for_transmission
    Output: JSON text without the trailing delimiter
    '''
    missing = [k for k in WIRE_KEYS if k not in record]
    if missing:
        raise WireFormatError(f"missing keys: {', '.join(missing)}")
    ordered = {k: record[k] for k in WIRE_KEYS}
    return json.dumps(ordered, ensure_ascii=False)


def load_record(text: str) -> Dict[str, Any]:
    ''' The function parses one JSON wire record. Raises WireFormatError if it is not a JSON object. '''
    try:
        obj = json.loads(text)
    except ValueError as e:
        # JSONDecodeError, or an integer literal past the int conversion limit
        raise WireFormatError(f"invalid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise WireFormatError(f"expected a JSON object, got {type(obj).__name__}")
    return obj


def write_records(stream: IO[str], records: Iterable[Dict[str, Any]]) -> int:
    '''
    The function writes wire records to a text stream, one per line.
    Output: the number of records written
    '''
    n = 0
    for record in records:
        stream.write(dump_record(record) + DELIM)
        n += 1
    stream.flush()
    return n


def read_records(stream: IO[str]) -> Iterator[Dict[str, Any]]:
    ''' Yield wire records from a text stream of newline-delimited JSON. Blank lines are skipped. '''
    for line in stream:
        line = line.strip()
        if not line:
            continue
        yield load_record(line)
