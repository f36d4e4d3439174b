import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .logging_utils import mask_token
from .token_store import ProtectionScope


log = logging.getLogger(__name__)

# Recognized flags, compared case-insensitively
TOKEN_FLAGS = {
    "-t": ProtectionScope.CURRENT_USER,
    "-tm": ProtectionScope.LOCAL_MACHINE,
}
SENDER_FLAG = "-s"
PHONE_FLAG = "-p"
MESSAGE_FLAG = "-m"
HELP_FLAGS = {"-h", "-help"}

FLAGS = frozenset(set(TOKEN_FLAGS) | {SENDER_FLAG, PHONE_FLAG, MESSAGE_FLAG} | HELP_FLAGS)

MIN_TOKEN_LENGTH = 10


class ParseError(ValueError):
    """Malformed command line (missing flag value, invalid token)."""


@dataclass(frozen=True)
class ParsedRequest:
    token_from_args: bool = False
    token: str = ""
    sender: str = ""
    recipients: Tuple[str, ...] = ()
    message: str = ""
    show_help: bool = False


def is_flag(arg: str) -> bool:
    return arg.lower() in FLAGS


def _take_value(args: Sequence[str], i: int, flag: str, allow_dash: bool) -> str:
    if i + 1 >= len(args):
        raise ParseError(f"No value after {flag}")
    value = args[i + 1]
    if not allow_dash and value.startswith("-"):
        raise ParseError(f"No value after {flag}")
    return value


def scan(
    args: Sequence[str],
    on_token: Optional[Callable[[str, ProtectionScope], None]] = None,
    strict: bool = False,
) -> ParsedRequest:
    """Scan the argument vector left to right into a ParsedRequest.

    `on_token(token, scope)` runs as soon as a valid -t/-tm value is seen, before the
    rest of the line is scanned, so a later ParseError does not undo the save.

    -m consumes every following argument up to the next exact flag, so message words
    may start with '-' (e.g. "-10%").

    Unrecognized top-level arguments are ignored unless `strict` is set.
    """
    token = ""
    token_from_args = False
    sender = ""
    recipients: List[str] = []
    message = ""

    i = 0
    while i < len(args):
        arg = args[i]
        flag = arg.lower()

        if flag in TOKEN_FLAGS:
            token = _take_value(args, i, flag, allow_dash=True)
            i += 1
            if not token.strip():
                raise ParseError("Token cannot be empty")
            if len(token) < MIN_TOKEN_LENGTH:
                raise ParseError("Token looks too short")
            if on_token is not None:
                on_token(token, TOKEN_FLAGS[flag])
            token_from_args = True
        elif flag == SENDER_FLAG:
            sender = _take_value(args, i, flag, allow_dash=False)
            i += 1
        elif flag == PHONE_FLAG:
            recipients.append(_take_value(args, i, flag, allow_dash=False))
            i += 1
        elif flag == MESSAGE_FLAG:
            parts: List[str] = []
            while i + 1 < len(args) and not is_flag(args[i + 1]):
                i += 1
                parts.append(args[i])
            # Multiple -m append to the message
            if parts:
                if message.strip():
                    message += " "
                message += " ".join(parts)
        elif flag in HELP_FLAGS:
            return ParsedRequest(show_help=True, token_from_args=token_from_args, token=token)
        elif strict:
            raise ParseError(f"Unrecognized argument: {mask_token(arg)}")
        else:
            log.debug("Ignoring unrecognized argument at position %d", i)
        i += 1

    return ParsedRequest(
        token_from_args=token_from_args,
        token=token,
        sender=sender,
        recipients=tuple(recipients),
        message=message.strip(),
    )
