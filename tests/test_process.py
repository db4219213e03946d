"""
Tests for shell command execution
"""

import os

import pytest

from tools.process import ProcessError, ProcessRunner, child_environment


@pytest.mark.asyncio
async def test_run_collects_output(tmp_path):
    result = await ProcessRunner().run("echo hello && pwd", cwd=tmp_path)

    assert result.returncode == 0
    assert result.output.splitlines() == ["hello", str(tmp_path)]


@pytest.mark.asyncio
async def test_non_zero_exit_raises_with_output_tail():
    with pytest.raises(ProcessError) as exc_info:
        await ProcessRunner().run("echo 'npm ERR! missing script' >&2; exit 3", quiet=True)

    error = exc_info.value
    assert error.returncode == 3
    assert "npm ERR! missing script" in error.output
    assert "npm ERR! missing script" in str(error)


@pytest.mark.asyncio
async def test_child_environment_is_passed():
    env = child_environment({"EXTENSION_ID": "ns.ext"})

    result = await ProcessRunner().run('echo "$EXTENSION_ID"', env=env, quiet=True)

    assert result.output == "ns.ext"
    assert "EXTENSION_ID" not in os.environ or os.environ["EXTENSION_ID"] != "ns.ext"


def test_child_environment_removes_unset_values(monkeypatch):
    monkeypatch.setenv("VERSION", "stale")

    env = child_environment({"VERSION": None, "MS_VERSION": "1.0.0"})

    assert "VERSION" not in env
    assert env["MS_VERSION"] == "1.0.0"
    assert os.environ["VERSION"] == "stale"


def test_long_output_is_truncated_in_message():
    error = ProcessError("npm install", 1, "x" * 5000 + "the real error")

    assert str(error).endswith("the real error")
    assert len(str(error)) < 2100
