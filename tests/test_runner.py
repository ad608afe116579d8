"""Tests for the command line entry point."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from fanssh.runner import build_parser, main, settings_from_args

from conftest import FakeConnection, command_output


def test_flags_map_to_settings() -> None:
    args = build_parser().parse_args(
        ["-H", "10.0.0.1:22", "-u", "root", "-P", "id_rsa", "-s", "main.go", "-d", "/tmp", "-t", "5"]
    )

    settings = settings_from_args(args)

    assert settings.hosts == "10.0.0.1:22"
    assert settings.private_key == Path("id_rsa")
    assert settings.src == Path("main.go")
    assert settings.dst == "/tmp"
    assert settings.timeout == 5


def test_missing_hosts_is_configuration_error(
    capsys: pytest.CaptureFixture[str], fake_connect: AsyncMock
) -> None:
    assert main(["-c", "ls"]) == 1

    assert "Configuration error" in capsys.readouterr().err
    fake_connect.assert_not_called()


def test_missing_operation_is_configuration_error(
    capsys: pytest.CaptureFixture[str], fake_connect: AsyncMock
) -> None:
    assert main(["-H", "10.0.0.1:22", "-u", "root", "-p", "pw"]) == 1

    assert "Nothing to do" in capsys.readouterr().err
    fake_connect.assert_not_called()


def test_port_out_of_range_is_configuration_error(
    capsys: pytest.CaptureFixture[str], fake_connect: AsyncMock
) -> None:
    assert main(["-H", "10.0.0.1:70000,127.0.0.1:22", "-u", "root", "-p", "pw", "-c", "ls"]) == 1

    assert "Port out of range" in capsys.readouterr().err
    fake_connect.assert_not_called()


def test_missing_host_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["-C", str(tmp_path / "nope"), "-c", "ls"]) == 1

    assert "Host list not found" in capsys.readouterr().err


def test_run_command_to_stdout(
    capsys: pytest.CaptureFixture[str], fake_connect: AsyncMock
) -> None:
    fake_connect.hosts["10.0.0.1"] = FakeConnection(command_output(b"bin\n"))

    code = main(["-H", "10.0.0.1:22,10.0.0.2:22", "-u", "root", "-p", "pw", "-c", "ls"])

    out = capsys.readouterr().out
    assert code == 0
    assert "10.0.0.1:22 execution result:\nbin\n" in out
    assert "connect to 10.0.0.2:22 failed" in out


def test_strict_exit_code(capsys: pytest.CaptureFixture[str], fake_connect: AsyncMock) -> None:
    code = main(["-H", "10.0.0.2:22", "-u", "root", "-p", "pw", "-c", "ls", "--strict"])

    assert code == 1
    assert "Failed hosts: 10.0.0.2:22" in capsys.readouterr().err


def test_results_written_to_file(tmp_path: Path, fake_connect: AsyncMock) -> None:
    hosts = tmp_path / "iplist"
    hosts.write_text("10.0.0.1 root pw1\nbadrow\n10.0.0.2 root pw2\n")
    out = tmp_path / "result.txt"
    fake_connect.hosts["10.0.0.1"] = FakeConnection(command_output(b"a\n"))
    fake_connect.hosts["10.0.0.2"] = FakeConnection(command_output(b"b\n"))

    assert main(["-C", str(hosts), "-c", "ls", "-o", str(out)]) == 0

    text = out.read_text()
    assert "10.0.0.1 execution result:\na\n" in text
    assert "10.0.0.2 execution result:\nb\n" in text
    assert fake_connect.await_count == 2
