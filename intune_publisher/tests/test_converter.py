"""
Tests for the IntuneWinAppUtil wrapper.
"""

import os
import subprocess
from unittest.mock import patch

import pytest

from intune_publisher.errors import ConverterError, PreconditionError
from intune_publisher.functions.converter import IntuneWinConverter


@pytest.fixture
def package(tmp_path):
    tool = tmp_path / "IntuneWinAppUtil.exe"
    tool.write_bytes(b"")
    application = tmp_path / "pkg" / "Application"
    application.mkdir(parents=True)
    (application / "Deploy-Application.exe").write_bytes(b"MZ")
    return tool, application, tmp_path / "pkg" / "Intune"


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_convert_runs_tool_quietly(package):
    tool, application, output = package
    converter = IntuneWinConverter(str(tool), timeout=5)

    with patch("intune_publisher.functions.converter.subprocess.run", return_value=_completed()) as run:
        converter.convert(application, application / "Deploy-Application.exe", output)

    command = run.call_args.args[0]
    assert command[1:] == [
        "-c", str(application),
        "-s", str(application / "Deploy-Application.exe"),
        "-o", str(output),
        "-q",
    ]
    assert run.call_args.kwargs["timeout"] == 5
    assert output.is_dir()


def test_non_zero_exit_reports_stderr(package):
    tool, application, output = package
    converter = IntuneWinConverter(str(tool))

    with patch(
        "intune_publisher.functions.converter.subprocess.run",
        return_value=_completed(returncode=2, stdout="ignored", stderr="bad setup file"),
    ):
        with pytest.raises(ConverterError) as excinfo:
            converter.convert(application, application / "Deploy-Application.exe", output)

    assert excinfo.value.exit_code == 2
    assert "bad setup file" in str(excinfo.value)


def test_non_zero_exit_falls_back_to_stdout(package):
    tool, application, output = package

    with patch(
        "intune_publisher.functions.converter.subprocess.run",
        return_value=_completed(returncode=1, stdout="stdout details", stderr="  "),
    ):
        with pytest.raises(ConverterError, match="stdout details"):
            IntuneWinConverter(str(tool)).convert(application, application / "Deploy-Application.exe", output)


def test_missing_tool(package, tmp_path):
    _, application, output = package
    converter = IntuneWinConverter(str(tmp_path / "nope" / "IntuneWinAppUtil.exe"))

    with pytest.raises(PreconditionError, match="IntuneWinAppUtil.exe not found"):
        converter.convert(application, application / "Deploy-Application.exe", output)


def test_missing_setup_file(package):
    tool, application, output = package

    with patch("intune_publisher.functions.converter.subprocess.run") as run:
        with pytest.raises(PreconditionError, match="Setup file not found"):
            IntuneWinConverter(str(tool)).convert(application, application / "setup.exe", output)
    run.assert_not_called()


def test_missing_application_folder(package, tmp_path):
    tool, _, output = package

    with pytest.raises(PreconditionError, match="Application folder not found"):
        IntuneWinConverter(str(tool)).convert(tmp_path / "missing", tmp_path / "missing" / "x.exe", output)


def test_locate_container_picks_newest(tmp_path):
    older = tmp_path / "old.intunewin"
    newer = tmp_path / "new.intunewin"
    older.write_bytes(b"1")
    newer.write_bytes(b"2")
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    assert IntuneWinConverter("tool").locate_container(tmp_path) == newer


def test_locate_container_empty(tmp_path):
    with pytest.raises(PreconditionError, match="No .intunewin file found"):
        IntuneWinConverter("tool").locate_container(tmp_path)
