from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, List, Optional, Protocol

from .logging_utils import MessageType, mask_token
from .scanner import ParsedRequest
from .smsapi_client import SendResult, SmsApiError
from .token_store import DecryptError, StoreError, TokenNotFoundError, TokenStore


RECIPIENT_DELIMITER = ","


class ExitCode(IntEnum):
    OK = 0
    RUNTIME_ERROR = 1
    INVALID_PARAMETERS = 2


@dataclass(frozen=True)
class RunResult:
    exit_code: ExitCode
    show_usage: bool = False


class SmsTransport(Protocol):
    def send_sms(self, text: str, to: str, sender: str) -> SendResult:
        ...


def missing_fields(request: ParsedRequest, token: str) -> List[str]:
    """Return an error line for every missing field. All four are always checked."""
    problems: List[str] = []
    if not token.strip():
        problems.append("Token invalid")
    if not request.sender.strip():
        problems.append("Sender invalid")
    if not request.recipients:
        problems.append("Phone invalid")
    if not request.message.strip():
        problems.append("Message invalid")
    return problems


def is_token_only(request: ParsedRequest) -> bool:
    return (
        request.token_from_args
        and not request.sender.strip()
        and not request.recipients
        and not request.message.strip()
    )


def dispatch(
    request: ParsedRequest,
    *,
    store: TokenStore,
    client_factory: Callable[[str], SmsTransport],
    on_message: Optional[Callable[[str, MessageType], None]] = None,
) -> RunResult:
    """Validate a scanned request and send it.

    The token comes from the request when -t/-tm was given, otherwise from the store.
    Returns the exit code and whether the caller should print usage.
    """

    def _emit(msg: str, kind: MessageType = MessageType.INFO) -> None:
        if on_message is not None:
            on_message(msg, kind)
        else:
            logging.log(kind.level, msg)

    token = request.token
    if not request.token_from_args:
        try:
            token = store.load()
        except TokenNotFoundError:
            token = ""
        except DecryptError:
            _emit("Saved token cannot be decrypted. Use -t or -tm.", MessageType.ERROR)
            _emit("SMS not sent.", MessageType.WARNING)
            return RunResult(ExitCode.RUNTIME_ERROR, show_usage=True)
        except StoreError as e:
            _emit(str(e), MessageType.ERROR)
            _emit("SMS not sent.", MessageType.WARNING)
            return RunResult(ExitCode.RUNTIME_ERROR)

    if is_token_only(request):
        _emit("Token saved. No SMS sent.", MessageType.INFO)
        return RunResult(ExitCode.OK)

    problems = missing_fields(request, token)
    if problems:
        for problem in problems:
            _emit(problem, MessageType.ERROR)
        _emit("SMS not sent.", MessageType.WARNING)
        return RunResult(ExitCode.INVALID_PARAMETERS, show_usage=True)

    phones = RECIPIENT_DELIMITER.join(request.recipients)
    text = request.message.strip()

    _emit("Sending SMS...")
    _emit(f"Token: {mask_token(token)}")
    _emit(f"Sender name: {request.sender}")
    _emit(f"Phones: {phones}")
    _emit(f"Message: {text}")

    try:
        client = client_factory(token)
        result = client.send_sms(text, phones, request.sender)
    except SmsApiError as e:
        _emit(f"SMSAPI {e.kind} error: {e}", MessageType.ERROR)
        _emit("SMS not sent.", MessageType.WARNING)
        return RunResult(ExitCode.RUNTIME_ERROR)

    _emit("Message sent.", MessageType.SUCCESS)
    if result.message_ids:
        _emit(f"Message id(s): {', '.join(result.message_ids)}")
    return RunResult(ExitCode.OK)
