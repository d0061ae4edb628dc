"""Parse, evaluate and format calculator protocol lines."""
from collections.abc import Callable as ABCCallable
from enum import Enum
import operator
import re
from typing import Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Operands and results are 32-bit signed integers
INT_MIN: int = -(2**31)
INT_MAX: int = 2**31 - 1

TERMINATOR: str = "bye"

# Type alias for operator functions (taking two ints, returning an int)
OperatorFn: ABCCallable[[int, int], int] = Callable[[int, int], int]

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


class Operator(str, Enum):
    """Operators understood by the server."""

    ADD = "ADD"
    SUB = "SUB"
    MUL = "MUL"
    DIV = "DIV"


class ResponseCode(str, Enum):
    """First token of every reply line."""

    SUCCESS = "10"
    DIVIDE_BY_ZERO = "20"
    MALFORMED_ARGUMENTS = "30"
    UNKNOWN_OPERATOR = "40"


def wrap_int32(value: int) -> int:
    """
    Reduce an arbitrary integer to its 32-bit two's complement value.

    :param int value: Exact result

    :return: Wrapped result in [INT_MIN, INT_MAX]
    :rtype: int
    """
    return (value - INT_MIN) % 2**32 + INT_MIN


def _truncating_div(a: int, b: int) -> int:
    """Integer division rounding toward zero (Python's // floors)."""
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


OPERATORS: Dict[str, OperatorFn] = {
    Operator.ADD.value: operator.add,
    Operator.SUB.value: operator.sub,
    Operator.MUL.value: operator.mul,
    Operator.DIV.value: _truncating_div,
}


class Request(BaseModel):
    """A well-formed request line: an operator token and two integer operands."""

    model_config = ConfigDict(frozen=True)

    # Not restricted to Operator: an unknown operator is an evaluation error, not a parse error
    operator: str = Field(..., min_length=1, description="Uppercased operator token")
    operand1: int = Field(..., ge=INT_MIN, le=INT_MAX, description="First operand")
    operand2: int = Field(..., ge=INT_MIN, le=INT_MAX, description="Second operand")


class Response(BaseModel):
    """Outcome of one request, serialized as a single reply line."""

    model_config = ConfigDict(frozen=True)

    code: ResponseCode = Field(..., description="Response code")
    value: Optional[int] = Field(default=None, description="Result, only for SUCCESS")

    @model_validator(mode="after")
    def value_only_on_success(self) -> "Response":
        """Ensure a value is carried by, and only by, successful responses."""
        if (self.code is ResponseCode.SUCCESS) != (self.value is not None):
            raise ValueError(f"Response code {self.code.value} does not match value {self.value!r}")
        return self

    @classmethod
    def success(cls, value: int) -> "Response":
        return cls(code=ResponseCode.SUCCESS, value=value)

    @classmethod
    def divide_by_zero(cls) -> "Response":
        return cls(code=ResponseCode.DIVIDE_BY_ZERO)

    @classmethod
    def malformed(cls) -> "Response":
        return cls(code=ResponseCode.MALFORMED_ARGUMENTS)

    @classmethod
    def unknown_operator(cls) -> "Response":
        return cls(code=ResponseCode.UNKNOWN_OPERATOR)


# A failed parse is answered directly with its response
ParseFailure = Response

# Human-readable sentences shown by the client for each error code
ERROR_MESSAGES: Dict[ResponseCode, str] = {
    ResponseCode.DIVIDE_BY_ZERO: "Error: division by zero is not allowed.",
    ResponseCode.MALFORMED_ARGUMENTS: "Error: invalid arguments (expected e.g. ADD 10 20).",
    ResponseCode.UNKNOWN_OPERATOR: "Error: unsupported operator (only ADD, SUB, MUL, DIV are allowed).",
}
NO_RESPONSE_MESSAGE: str = "no response from server"


def tokenize(line: str) -> List[str]:
    """
    Split a protocol line into tokens.

    Consecutive whitespace is collapsed and empty tokens are dropped.

    :param str line: Raw line

    :return: List of tokens
    :rtype: List[str]
    """
    return line.split()


def _parse_int(token: str) -> int:
    """
    Parse a decimal 32-bit signed integer token.

    :param str token: Operand token

    :return: Parsed integer
    :rtype: int
    :raises ValueError: If the token is not a decimal integer or does not fit in 32 bits
    """
    # int() alone would also accept "1_000" and non-ASCII digits
    if not _INTEGER_RE.fullmatch(token):
        raise ValueError(f"Not an integer: {token!r}")
    value = int(token)
    if not INT_MIN <= value <= INT_MAX:
        raise ValueError(f"Integer out of range: {token!r}")
    return value


def parse_request(line: str) -> Union[Request, Response]:
    """
    Parse a request line such as ``ADD 10 20``.

    :param str line: Request line, with or without its line ending

    :return: The parsed Request, or a MALFORMED_ARGUMENTS Response
    :rtype: Union[Request, Response]
    """
    tokens: List[str] = tokenize(line)
    if len(tokens) != 3:
        return Response.malformed()

    try:
        operand1 = _parse_int(tokens[1])
        operand2 = _parse_int(tokens[2])
    except ValueError:
        return Response.malformed()

    return Request(operator=tokens[0].upper(), operand1=operand1, operand2=operand2)


def evaluate(request: Request) -> Response:
    """
    Compute the response for a parsed request.

    Results wrap around like 32-bit signed integer arithmetic.

    :param Request request: Parsed request

    :return: Computed response
    :rtype: Response
    """
    fn: Optional[OperatorFn] = OPERATORS.get(request.operator)
    if fn is None:
        return Response.unknown_operator()

    if request.operator == Operator.DIV.value and request.operand2 == 0:
        return Response.divide_by_zero()

    return Response.success(wrap_int32(fn(request.operand1, request.operand2)))


def format_response(response: Response) -> str:
    """
    Serialize a response to its wire form (without line ending).

    :param Response response: Response to serialize

    :return: ``"10 <value>"``, ``"20"``, ``"30"`` or ``"40"``
    :rtype: str
    """
    if response.code is ResponseCode.SUCCESS:
        return f"{response.code.value} {response.value}"
    return response.code.value


def handle_line(line: str) -> str:
    """Parse, evaluate and format one request line."""
    parsed = parse_request(line)
    if isinstance(parsed, Response):
        return format_response(parsed)
    return format_response(evaluate(parsed))


def is_terminator(line: str) -> bool:
    """Return True if the line (ignoring its line ending) is the ``bye`` terminator."""
    return line.rstrip("\r\n").lower() == TERMINATOR


def decode_response(line: Optional[str]) -> str:
    """
    Translate a reply line into a sentence for the user.

    :param Optional[str] line: Reply line, or None if the server closed the stream

    :return: Human-readable text
    :rtype: str
    """
    if line is None:
        return NO_RESPONSE_MESSAGE

    line = line.rstrip("\r\n")
    tokens: List[str] = tokenize(line)
    if not tokens:
        return f"malformed server response: {line}"

    code = tokens[0]
    if code == ResponseCode.SUCCESS.value:
        if len(tokens) < 2:
            return f"malformed server response: {line}"
        return f"Result: {tokens[1]}"

    for known, message in ERROR_MESSAGES.items():
        if code == known.value:
            return message

    return f"unknown server response: {line}"
