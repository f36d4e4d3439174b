import logging
from functools import partial

import typer
from rich.console import Console
from rich.text import Text

from .config import Settings, load_env, load_settings
from .core import ExitCode, dispatch
from .logging_utils import MessageType, format_kv, init_run_logging, prune_old_runs, sanitize_settings
from .scanner import ParseError, scan
from .smsapi_client import SmsApiClient
from .token_store import ProtectionScope, StoreError, TokenStore


load_env()

HELP_MSG = """Usage:
    smsender -s <sender> -p <phone> [-p <phone2> ...] -m <message...>
    smsender -t  <token>   (save token for current user)
    smsender -tm <token>   (save token for local machine)
Examples:
    smsender -t XXX
    smsender -s Sender -p 48111111111 -p 48222222222 -m Warning! Device down!"""


def _console() -> Console:
    # Built per call so redirection is detected against the current stdout
    return Console(highlight=False, emoji=False, soft_wrap=True)


def print_message(msg: str, kind: MessageType) -> None:
    """Print a prefixed status line (colored on a terminal) and tee it into the run log."""
    if logging.getLogger().handlers:
        logging.log(kind.level, msg)
    line = Text(kind.prefix, style=kind.color)
    line.append(msg)
    _console().print(line)


def print_help() -> None:
    console = _console()
    console.print()
    console.print(HELP_MSG, markup=False)


def _setup_logging(settings: Settings) -> None:
    try:
        log_file = init_run_logging(base_dir=settings.log_dir)
    except OSError:
        # Run without a log file rather than fail the send
        return
    prune_old_runs(settings.log_dir, keep=max(1, settings.log_keep))
    logging.info("smsender run: %s", format_kv(sanitize_settings(settings.as_dict())))
    logging.info("Logging to %s", log_file)


def _save_token(store: TokenStore, token: str, scope: ProtectionScope) -> None:
    store.save(token, scope)
    print_message("New Token saved.", MessageType.SUCCESS)


app = typer.Typer(add_completion=False, help="Send SMS messages through SMSAPI.")


@app.command(
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "help_option_names": [],
    }
)
def send(ctx: typer.Context) -> None:
    """Parse the flag-style command line, then save the token and/or send the SMS."""
    settings = load_settings()
    _setup_logging(settings)

    store = TokenStore(
        settings.token_path,
        key_paths={
            ProtectionScope.CURRENT_USER: settings.user_key_path,
            ProtectionScope.LOCAL_MACHINE: settings.machine_key_path,
        },
    )

    try:
        request = scan(ctx.args, on_token=partial(_save_token, store), strict=settings.strict_args)
    except ParseError as e:
        print_message(str(e), MessageType.ERROR)
        print_message("SMS not sent.", MessageType.WARNING)
        raise typer.Exit(code=int(ExitCode.INVALID_PARAMETERS))
    except StoreError as e:
        print_message(str(e), MessageType.ERROR)
        print_message("SMS not sent.", MessageType.WARNING)
        raise typer.Exit(code=int(ExitCode.RUNTIME_ERROR))

    if request.show_help:
        print_help()
        raise typer.Exit(code=int(ExitCode.OK))

    result = dispatch(
        request,
        store=store,
        client_factory=lambda token: SmsApiClient(token=token, base_url=settings.api_url, timeout=settings.timeout),
        on_message=print_message,
    )
    if result.show_usage:
        print_help()
    raise typer.Exit(code=int(result.exit_code))
