"""Tests for the shell command executor (runs real /bin/sh commands)."""

import pytest

from nare.security.executor import TRUNCATION_MARKER, CommandExecutor, ExecutionResult, truncate


@pytest.mark.asyncio
async def test_success_block_echoes_command(audit):
    executor = CommandExecutor(audit=audit)
    output = await executor.execute("echo hello")
    assert output.startswith("✅ `echo hello`")
    assert "hello" in output
    assert audit.events[0]["event"] == "command_executed"
    assert audit.events[0]["success"] is True


@pytest.mark.asyncio
async def test_df_reports_filesystem(audit):
    output = await CommandExecutor(audit=audit).execute("df -h /")
    assert output.startswith("✅")
    assert "/" in output


@pytest.mark.asyncio
async def test_failure_block_has_exit_code_and_stderr(audit):
    output = await CommandExecutor(audit=audit).execute("echo boom >&2; exit 3")
    assert output.startswith("❌")
    assert "exit code 3" in output
    assert "boom" in output
    assert audit.events[0]["success"] is False


@pytest.mark.asyncio
async def test_missing_binary_is_a_failure_not_an_exception(audit):
    output = await CommandExecutor(audit=audit).execute("definitely-not-a-command-nare")
    assert output.startswith("❌")
    assert "exit code 127" in output


@pytest.mark.asyncio
async def test_success_output_truncated(audit):
    executor = CommandExecutor(success_chars=100, audit=audit)
    output = await executor.execute("yes x | head -n 5000")
    assert TRUNCATION_MARKER in output
    assert output.count("x") <= 101


@pytest.mark.asyncio
async def test_failure_output_truncated(audit):
    executor = CommandExecutor(failure_chars=50, audit=audit)
    output = await executor.execute("yes e | head -n 1000 >&2; exit 1")
    assert output.startswith("❌")
    assert TRUNCATION_MARKER in output


@pytest.mark.asyncio
async def test_timeout_kills_process(audit):
    executor = CommandExecutor(timeout=0.5, audit=audit)
    result = await executor.run("sleep 5")
    assert result.timed_out
    assert not result.success
    output = executor.format("sleep 5", result)
    assert output.startswith("❌")
    assert "timed out after 0.5s" in output


@pytest.mark.asyncio
async def test_output_cap_kills_process(audit):
    executor = CommandExecutor(max_output_bytes=1000, audit=audit)
    result = await executor.run("yes | head -c 200000")
    assert result.output_capped
    assert not result.success


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("x" * 20, 10) == "x" * 10 + TRUNCATION_MARKER


def test_format_empty_success(audit):
    executor = CommandExecutor(audit=audit)
    output = executor.format("true", ExecutionResult(exit_code=0))
    assert "(no output)" in output
