from pathlib import Path

import pytest
from typer.testing import CliRunner

from smsender import cli, smsapi_client
from smsender.smsapi_client import ActionError, SendResult


TOKEN = "abcdefghij0123456789abcdefghij01"

runner = CliRunner()


class FakeClient:
    instances = []

    def __init__(self, token, base_url=None, timeout=None):
        self.token = token
        self.base_url = base_url
        self.timeout = timeout
        self.sent = []
        FakeClient.instances.append(self)

    def send_sms(self, text, to, sender):
        self.sent.append((text, to, sender))
        return SendResult(count=1, points=0.16, message_ids=("1",))


class FailingClient(FakeClient):
    def send_sms(self, text, to, sender):
        raise ActionError("Invalid phone number", 13)


@pytest.fixture(autouse=True)
def fake_client(monkeypatch):
    FakeClient.instances = []
    monkeypatch.setattr(cli, "SmsApiClient", FakeClient)
    return FakeClient


def invoke(*args):
    return runner.invoke(cli.app, list(args))


def test_token_only_invocation(isolated_env):
    result = invoke("-t", TOKEN)
    assert result.exit_code == 0
    assert "New Token saved." in result.output
    assert "Token saved. No SMS sent." in result.output
    assert (isolated_env / "token.dat").exists()
    assert FakeClient.instances == []


def test_short_token_exits_2_without_writing(isolated_env):
    result = invoke("-t", "123456789")
    assert result.exit_code == 2
    assert "Token looks too short" in result.output
    assert "SMS not sent." in result.output
    assert not (isolated_env / "token.dat").exists()


def test_missing_phone_reports_every_field(isolated_env):
    assert invoke("-t", TOKEN).exit_code == 0
    result = invoke("-s", "Sender", "-m", "Hi")
    assert result.exit_code == 2
    assert "Phone invalid" in result.output
    assert "Token invalid" not in result.output
    assert "Sender invalid" not in result.output
    assert "Message invalid" not in result.output
    assert "Usage:" in result.output


def test_send_with_saved_token(isolated_env, monkeypatch):
    monkeypatch.setenv("SMSENDER_API_URL", "http://gateway.test/")
    monkeypatch.setenv("SMSENDER_TIMEOUT", "7")
    invoke("-t", TOKEN)

    result = invoke("-s", "Plant", "-P", "48111111111", "-p", "48222222222", "-M", "Warning!", "-10%", "voltage")
    assert result.exit_code == 0, result.output
    client = FakeClient.instances[-1]
    assert client.token == TOKEN
    assert client.base_url == "http://gateway.test/"
    assert client.timeout == 7.0
    assert client.sent == [("Warning! -10% voltage", "48111111111,48222222222", "Plant")]
    assert "Message sent." in result.output
    assert TOKEN not in result.output
    assert "Token: abc*****" in result.output
    assert "\x1b[" not in result.output


def test_save_and_send_in_one_invocation(isolated_env):
    result = invoke("-tm", TOKEN, "-s", "Plant", "-p", "1", "-m", "hi")
    assert result.exit_code == 0, result.output
    assert (isolated_env / "machine" / "machine.key").exists()
    assert FakeClient.instances[-1].token == TOKEN


def test_transport_failure_exits_1(isolated_env, monkeypatch):
    monkeypatch.setattr(cli, "SmsApiClient", FailingClient)
    result = invoke("-t", TOKEN, "-s", "Plant", "-p", "1", "-m", "hi")
    assert result.exit_code == 1
    assert "Invalid phone number" in result.output
    assert result.output.rstrip().endswith("SMS not sent.")


def test_undecryptable_token_exits_1(isolated_env):
    (isolated_env / "token.dat").write_bytes(b"not decryptable")
    result = invoke("-s", "Plant", "-p", "1", "-m", "hi")
    assert result.exit_code == 1
    assert "Saved token cannot be decrypted" in result.output
    assert "Usage:" in result.output


@pytest.mark.parametrize("flag", ["-h", "-help", "-HELP"])
def test_help_exits_0(flag):
    result = invoke("-s", "Plant", flag)
    assert result.exit_code == 0
    assert "Usage:" in result.output
    assert FakeClient.instances == []


def test_missing_flag_value_exits_2():
    result = invoke("-s", "Plant", "-p")
    assert result.exit_code == 2
    assert "No value after -p" in result.output


def test_strict_mode_from_environment(monkeypatch):
    monkeypatch.setenv("SMSENDER_STRICT_ARGS", "1")
    result = invoke("--sender", "Plant")
    assert result.exit_code == 2
    assert "Unrecognized argument: --s*****" in result.output
    assert "--sender" not in result.output


def test_token_save_failure_exits_1(isolated_env, monkeypatch):
    blocker = isolated_env / "blocker"
    blocker.write_text("x", encoding="utf-8")
    monkeypatch.setenv("SMSENDER_MACHINE_KEY_FILE", str(blocker / "machine.key"))
    result = invoke("-tm", TOKEN)
    assert result.exit_code == 1
    assert "LocalMachine" in result.output


def test_run_log_is_written_with_masked_token(isolated_env):
    invoke("-t", TOKEN, "-s", "Plant", "-p", "1", "-m", "hi")
    logs = list(Path(isolated_env / "logs").glob("run_*.log"))
    assert logs
    text = "".join(p.read_text(encoding="utf-8") for p in logs)
    assert "Message sent." in text
    assert TOKEN not in text


def test_token_store_uses_configured_key_paths(isolated_env):
    invoke("-t", TOKEN)
    assert (isolated_env / "user" / "user.key").exists()
    assert not (isolated_env / "machine" / "machine.key").exists()


def test_malformed_gateway_reply_ends_with_status_line(isolated_env, monkeypatch):
    class Reply:
        status_code = 200
        text = '{"count": 1, "list": ["x"]}'

        def json(self):
            return {"count": 1, "list": ["x"]}

    monkeypatch.setattr(cli, "SmsApiClient", smsapi_client.SmsApiClient)
    monkeypatch.setattr(smsapi_client.requests, "post", lambda *a, **kw: Reply())
    result = invoke("-t", TOKEN, "-s", "Plant", "-p", "1", "-m", "hi")
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "Unexpected response" in result.output
    assert result.output.rstrip().endswith("SMS not sent.")
