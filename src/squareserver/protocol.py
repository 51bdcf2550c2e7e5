"""
=============================================================================
SQUARE PROTOCOL CODEC
=============================================================================

The wire protocol is one request per line, one reply per line:

    Request ::= Number "\\n"
    Number  ::= [0-9]+
    Reply   ::= (Number | "err") "\\n"

    Client                                   Server
      │                                        │
      │  "7\\n"  ────────────────────────────►  │   decode → 7
      │                                        │   compute → 49
      │  ◄────────────────────────────  "49\\n" │   encode
      │                                        │
      │  "abc\\n" ───────────────────────────►  │   decode → MALFORMED
      │  ◄─────────────────────────────  "err\\n"│
      │                                        │

Nothing in this module touches a socket. Both listener variants and the
client share these functions, so the grammar can be tested on its own.

=============================================================================
DECODE RESULTS ARE TAGGED, NOT RAISED
=============================================================================

A bad request line and a broken socket must be handled with very
different severity:

    MALFORMED       → reply "err", read the next line
    I/O failure     → close the connection

So decode_request() never raises for bad input. It returns a
DecodedRequest whose `kind` says which case we are in, and I/O failures
stay as exceptions raised by the Connection.

=============================================================================
NUMBER WIDTH
=============================================================================

Python ints never overflow, so x * x is always exact. The only limit is
the interpreter's int <-> str conversion guard (4300 digits by default).
Requests are capped at MAX_REQUEST_DIGITS so that every square still
fits under that guard when it is written back out.

=============================================================================
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ProtocolViolation


LINE_END = "\n"
ERROR_TOKEN = "err"

# Squares of 2000-digit numbers have at most 4000 digits.
MAX_REQUEST_DIGITS = 2000

_NUMBER = re.compile(r"[0-9]+")


class RequestKind(Enum):
    """What a request line turned out to be."""
    NUMBER = "number"
    MALFORMED = "malformed"
    END_OF_STREAM = "end_of_stream"


@dataclass(frozen=True)
class DecodedRequest:
    """
    Result of decoding one request line.

    Attributes:
        kind: NUMBER, MALFORMED or END_OF_STREAM.
        value: The parsed integer (NUMBER only).
        text: The offending line (MALFORMED only).
    """
    kind: RequestKind
    value: Optional[int] = None
    text: Optional[str] = None

    @property
    def is_end_of_stream(self) -> bool:
        return self.kind is RequestKind.END_OF_STREAM

    @property
    def is_malformed(self) -> bool:
        return self.kind is RequestKind.MALFORMED


@dataclass(frozen=True)
class Reply:
    """
    One reply line: either a number or the error marker.

    Use Reply(49) for a result and Reply.error() for "err".
    """
    value: Optional[int] = None

    @classmethod
    def error(cls) -> "Reply":
        return cls(value=None)

    @property
    def is_error(self) -> bool:
        return self.value is None


END_OF_STREAM = DecodedRequest(RequestKind.END_OF_STREAM)


# =============================================================================
# SERVER SIDE
# =============================================================================

def decode_request(line: Optional[str]) -> DecodedRequest:
    """
    Decode one request line (terminator already stripped).

    Args:
        line: The line text, or None when the stream has ended.

    Returns:
        END_OF_STREAM for None, NUMBER for a valid non-negative integer,
        MALFORMED (carrying the text) for anything else.
    """
    if line is None:
        return END_OF_STREAM

    # fullmatch, not int(): int() would also accept " 7", "+7", "-7",
    # "7_000" and non-ASCII digits.
    if _NUMBER.fullmatch(line) is None or len(line) > MAX_REQUEST_DIGITS:
        return DecodedRequest(RequestKind.MALFORMED, text=line)

    return DecodedRequest(RequestKind.NUMBER, value=int(line))


def compute_reply(x: int) -> int:
    """Square x."""
    return x * x


def encode_reply(reply: Reply) -> str:
    """
    Encode a reply as exactly one terminated line.

    >>> encode_reply(Reply(49))
    '49\\n'
    >>> encode_reply(Reply.error())
    'err\\n'
    """
    if reply.is_error:
        return ERROR_TOKEN + LINE_END
    return str(reply.value) + LINE_END


# =============================================================================
# CLIENT SIDE
# =============================================================================

def encode_request(x: int) -> str:
    """
    Encode a request line for x.

    Raises:
        ValueError: If x is not a non-negative int.
    """
    # bool is an int subclass; True would otherwise go out as "True\n"
    if isinstance(x, bool) or not isinstance(x, int):
        raise ValueError(f"request must be an int, got {type(x).__name__}")
    if x < 0:
        raise ValueError(f"request must be non-negative, got {x}")
    return str(x) + LINE_END


def decode_reply(line: str) -> Reply:
    """
    Decode one reply line (terminator already stripped).

    Raises:
        ProtocolViolation: If the line matches neither grammar branch.
    """
    if line == ERROR_TOKEN:
        return Reply.error()

    if _NUMBER.fullmatch(line) is None:
        raise ProtocolViolation(line)

    try:
        return Reply(int(line))
    except ValueError:
        # Past the interpreter's digit limit
        raise ProtocolViolation(line) from None


# =============================================================================
# LINE HELPERS
# =============================================================================

def read_line_text(raw: bytes) -> str:
    """
    Turn raw line bytes into text without the terminator.

    Strips one trailing "\\n" and an optional "\\r" before it. Bytes that
    are not ASCII become U+FFFD, which no grammar branch accepts.
    """
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw.decode("ascii", errors="replace")
