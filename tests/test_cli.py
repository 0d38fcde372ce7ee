import hashlib
import json
import os

import pytest
from click.testing import CliRunner

from filesync import cli as cli_module
from filesync.cli import cli
from filesync.config import Config, EXAMPLE_CONFIG


ENV_KEYS = [
    'FILESYNC_SERVER', 'FILESYNC_PORT', 'FILESYNC_SAVE_PATH',
    'FILESYNC_CREATE_DIRS', 'FILESYNC_LOG_LEVEL',
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    # load_dotenv writes straight into os.environ
    for key in ENV_KEYS:
        os.environ.pop(key, None)


@pytest.fixture
def calls(monkeypatch):
    """Record role dispatch instead of opening sockets."""
    recorded = []
    monkeypatch.setattr(cli_module, '_serve', lambda config: recorded.append(('serve', config)))
    monkeypatch.setattr(
        cli_module, '_send',
        lambda config, name, path: recorded.append(('send', config, name, path)),
    )
    return recorded


def write_config(path, data):
    path.write_text(json.dumps(data))
    return str(path)


def test_example_config():
    result = CliRunner().invoke(cli, ['config'])
    assert result.exit_code == 0
    assert json.loads(result.output) == json.loads(EXAMPLE_CONFIG)


def test_write_default_config(tmp_path):
    target = tmp_path / "out.json"
    result = CliRunner().invoke(cli, ['config', '-o', str(target)])
    assert result.exit_code == 0
    assert Config.from_file(target) == Config()


def test_checksum_command(tmp_path):
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello")

    result = CliRunner().invoke(cli, ['checksum', str(path)])
    assert result.exit_code == 0
    assert hashlib.sha256(b"hello").hexdigest() in result.output


def test_checksum_unknown_algorithm(tmp_path):
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello")

    result = CliRunner().invoke(cli, ['checksum', '-a', 'not-a-hash', str(path)])
    assert result.exit_code == 2


def test_run_requires_config_file():
    result = CliRunner().invoke(cli, ['run'])
    assert result.exit_code == 2


def test_run_unreadable_config_exits_before_dispatch(tmp_path, calls):
    result = CliRunner().invoke(cli, ['run', '-configFile', str(tmp_path / "nope.json")])
    assert result.exit_code == 1
    assert calls == []


def test_run_empty_server_selects_server_role(tmp_path, calls):
    cfg = write_config(tmp_path / "s.json", {"port": ":8080", "savePath": str(tmp_path)})

    result = CliRunner().invoke(cli, ['-v', 'run', '-configFile', cfg])
    assert result.exit_code == 0
    assert calls[0][0] == 'serve'
    assert calls[0][1].port_number == 8080


def test_run_with_server_selects_client_role(tmp_path, calls):
    cfg = write_config(tmp_path / "c.json", {"server": "10.0.0.2", "port": ":8080"})

    result = CliRunner().invoke(cli, [
        'run', '-configFile', cfg, '-fileName', 'a.txt', '-filePath', 'sub',
    ])
    assert result.exit_code == 0
    kind, config, name, path = calls[0]
    assert kind == 'send'
    assert config.server == "10.0.0.2"
    assert (name, path) == ('a.txt', 'sub')


def test_run_long_option_names(tmp_path, calls):
    cfg = write_config(tmp_path / "c.json", {"server": "10.0.0.2", "port": ":8080"})

    result = CliRunner().invoke(cli, [
        'run', '--config-file', cfg, '--file-name', 'a.txt', '--file-path', 'sub',
    ])
    assert result.exit_code == 0
    assert calls[0][2:] == ('a.txt', 'sub')


def test_client_role_needs_file_name(tmp_path, calls):
    cfg = write_config(tmp_path / "c.json", {"server": "10.0.0.2", "port": ":8080"})

    result = CliRunner().invoke(cli, ['run', '-configFile', cfg])
    assert result.exit_code == 2
    assert calls == []


def test_serve_overrides(tmp_path, calls):
    result = CliRunner().invoke(cli, [
        'serve', '--port', ':9100', '--save-path', str(tmp_path), '--create-dirs',
    ])
    assert result.exit_code == 0
    config = calls[0][1]
    assert config.is_server
    assert config.port_number == 9100
    assert config.create_dirs


def test_serve_bad_port(calls):
    result = CliRunner().invoke(cli, ['serve', '--port', 'abc'])
    assert result.exit_code == 1
    assert calls == []


def test_send_needs_server(tmp_path, calls):
    path = tmp_path / "a.txt"
    path.write_bytes(b"x")

    result = CliRunner().invoke(cli, ['send', str(path), 'sub'])
    assert result.exit_code == 2
    assert calls == []


def test_send_dispatches(tmp_path, calls):
    path = tmp_path / "a.txt"
    path.write_bytes(b"x")

    result = CliRunner().invoke(cli, ['send', str(path), 'sub', '--server', 'h', '--port', '9000'])
    assert result.exit_code == 0
    kind, config, name, dest = calls[0]
    assert (config.server, config.port_number) == ('h', 9000)
    assert (name, dest) == (str(path), 'sub')
