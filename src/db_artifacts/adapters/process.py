"""Async subprocess helpers shared by the docker and mysql adapters."""

import asyncio
import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path

from db_artifacts.adapters.base import CommandResult

logger = logging.getLogger(__name__)


def child_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Current environment plus ``extra`` (used to pass MYSQL_PWD)."""
    env = dict(os.environ)
    if extra:
        env.update(extra)
    return env


async def run_command(
    argv: list[str],
    *,
    env: Mapping[str, str] | None = None,
    stdout_path: Path | None = None,
) -> CommandResult:
    """Run ``argv`` to completion and capture its output.

    Args:
        argv: Program and arguments (no shell).
        env: Full environment for the child.  ``None`` inherits ours.
        stdout_path: When given, stdout is written to this file instead of
            being captured (used for dumps, which can be very large).

    Returns:
        CommandResult with the exit code, stdout (when captured) and stderr.
        A missing executable is reported as exit code 127.
    """
    logger.debug("Running: %s", " ".join(argv))
    try:
        if stdout_path is not None:
            with open(stdout_path, "wb") as out:
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    stdout=out,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                )
                _, stderr = await proc.communicate()
            stdout = b""
        else:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
            stdout, stderr = await proc.communicate()
    except FileNotFoundError as e:
        return CommandResult(returncode=127, stderr=str(e))

    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def feed_command(
    argv: list[str],
    chunks: Iterable[bytes],
    *,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run ``argv`` and write ``chunks`` to its stdin.

    stderr is drained concurrently so a chatty client cannot block on a full
    pipe while we are still writing.  If the child exits early the remaining
    chunks are dropped and its exit code reports the failure.
    """
    logger.debug("Streaming into: %s", " ".join(argv))
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except FileNotFoundError as e:
        return CommandResult(returncode=127, stderr=str(e))

    assert proc.stdin is not None and proc.stderr is not None
    stderr_task = asyncio.create_task(proc.stderr.read())
    try:
        for chunk in chunks:
            proc.stdin.write(chunk)
            await proc.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Client closed its input early")
    except BaseException:
        # Reading failed or the run was cancelled: the client must not see
        # EOF and apply a truncated script.
        proc.kill()
        stderr_task.cancel()
        await proc.wait()
        raise
    finally:
        proc.stdin.close()

    stderr = await stderr_task
    returncode = await proc.wait()
    return CommandResult(
        returncode=returncode,
        stderr=stderr.decode("utf-8", errors="replace"),
    )
