"""Local shell handler for executing local_shell_call actions."""

import asyncio
import os
import re
import shlex
from pathlib import Path
from typing import Any

from roundtrip.config import get_config
from roundtrip.exceptions import ToolBlockedError
from roundtrip.logging import get_logger
from roundtrip.tools.registry import LocalShellHandler, ToolResult
from roundtrip.types.items import LocalShellAction, LocalShellCall, ResponseItem

log = get_logger(__name__)

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*$")
_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&"}
_SHELL_WRAPPER_TOKENS = {"sudo", "command", "builtin", "nohup", "time", "env"}
_SHELL_INTERPRETERS = {"sh", "bash", "zsh", "dash", "ksh"}


def _compile_shell_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def _tokenize_shell_command(command: str) -> list[str]:
    """Tokenize shell command while preserving control operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    return list(lexer)


def _split_shell_segments(command: str) -> list[list[str]]:
    """Split shell command into tokenized segments separated by control operators."""
    segments: list[list[str]] = []
    current: list[str] = []
    for token in _tokenize_shell_command(command):
        if token in _SHELL_SEPARATOR_TOKENS:
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _extract_segment_base_command(tokens: list[str]) -> str:
    """Extract executable command token from a tokenized shell segment."""
    for token in tokens:
        token = str(token).strip()
        if not token or token in _SHELL_WRAPPER_TOKENS:
            continue
        if _ASSIGNMENT_RE.match(token) and "/" not in token:
            continue
        return token
    return ""


def extract_shell_base_commands(command: str) -> list[str]:
    """Extract base command token from each shell segment."""
    cleaned = str(command or "").strip()
    if not cleaned:
        return []
    try:
        segments = _split_shell_segments(cleaned)
    except ValueError:
        return []
    return [base for segment in segments if (base := _extract_segment_base_command(segment))]


def is_blocked_shell_command(command: str, blocked_patterns: list[str]) -> tuple[bool, str]:
    """Evaluate command against blocked patterns using parsed command matching.

    Patterns containing whitespace are searched in each segment's text;
    single-word patterns must match a segment's base command.
    """
    cleaned = str(command or "").strip()
    if not cleaned:
        return True, "empty_command"

    try:
        segments = _split_shell_segments(cleaned)
    except ValueError:
        return True, "unparseable_command"
    if not segments:
        return True, "unparseable_command"

    segment_texts = [" ".join(tokens) for tokens in segments]
    base_commands = [base for segment in segments if (base := _extract_segment_base_command(segment))]
    if not base_commands:
        return True, "unparseable_command"

    for raw_pattern in blocked_patterns or []:
        pattern = str(raw_pattern or "").strip()
        if not pattern:
            continue
        compiled = _compile_shell_pattern(pattern)
        segment_level_pattern = bool(re.search(r"\s", pattern))
        targets = segment_texts if segment_level_pattern else base_commands
        matcher = compiled.search if segment_level_pattern else compiled.match
        for target in targets:
            if matcher(target):
                return True, pattern
    return False, ""


def command_texts(command: list[str]) -> list[str]:
    """Shell texts to check for an argv; `sh -c SCRIPT` also yields SCRIPT."""
    if not command:
        return [""]
    texts = [shlex.join(command)]
    if Path(command[0]).name in _SHELL_INTERPRETERS:
        for index, arg in enumerate(command[1:-1], start=1):
            if arg.startswith("-") and "c" in arg[1:]:
                texts.append(command[index + 1])
                break
    return texts


class SubprocessShellHandler(LocalShellHandler):
    """Execute local_shell_call actions as subprocesses."""

    def __init__(self, blocked: list[str] | None = None, max_output_chars: int | None = None):
        self.config = get_config()
        shell_cfg = self.config.tools.shell
        self.blocked = list(blocked if blocked is not None else shell_cfg.blocked)
        self.max_output_chars = int(max_output_chars or shell_cfg.max_output_chars)
        self.default_timeout = float(shell_cfg.timeout or 30)

    def _action_timeout(self, action: LocalShellAction) -> float:
        if action.timeout_ms:
            return max(0.001, action.timeout_ms / 1000)
        return max(1.0, self.default_timeout)

    def timeout_for(self, call: ResponseItem) -> float | None:
        if isinstance(call, LocalShellCall):
            # Leave room for the process kill before the dispatch deadline.
            return self._action_timeout(call.action) + 5.0
        return super().timeout_for(call)

    def _is_command_safe(self, command: list[str]) -> tuple[bool, str]:
        for text in command_texts(command):
            blocked, matched = is_blocked_shell_command(text, self.blocked)
            if blocked:
                if matched == "empty_command":
                    return False, "Command is empty"
                if matched == "unparseable_command":
                    return False, "Command is not parseable"
                return False, f"Command matches blocked pattern: {matched}"
        return True, ""

    async def execute(self, action: LocalShellAction) -> ToolResult:
        """Run the action's argv.

        Returns:
            ToolResult with combined output; success mirrors a zero exit code

        Raises:
            ToolBlockedError if the command matches a blocked pattern
        """
        is_safe, reason = self._is_command_safe(action.command)
        if not is_safe:
            log.warning("Blocked unsafe command", command=action.command, reason=reason)
            raise ToolBlockedError(self.key, reason)

        timeout = self._action_timeout(action)

        env = os.environ.copy()
        env["PATH"] = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")
        env.update(action.env)

        kwargs: dict[str, Any] = {}
        if action.user:
            kwargs["user"] = action.user

        try:
            log.info("Executing shell command", command=action.command, timeout=timeout)

            process = await asyncio.create_subprocess_exec(
                *action.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=action.working_directory or None,
                **kwargs,
            )

            communicate_task = asyncio.create_task(process.communicate())
            try:
                done, _ = await asyncio.wait({communicate_task}, timeout=timeout)
                if communicate_task in done:
                    stdout, stderr = await communicate_task
                else:
                    process.kill()
                    await process.wait()
                    communicate_task.cancel()
                    try:
                        await communicate_task
                    except asyncio.CancelledError:
                        pass
                    label = int(timeout) if float(timeout).is_integer() else timeout
                    return ToolResult(success=False, error=f"Command timed out after {label}s")
            except asyncio.CancelledError:
                process.kill()
                await process.wait()
                communicate_task.cancel()
                raise

            stdout_text = stdout.decode("utf-8", errors="replace").strip()
            stderr_text = stderr.decode("utf-8", errors="replace").strip()

            output = stdout_text
            if stderr_text:
                output += f"\n[stderr] {stderr_text}"

            max_length = self.max_output_chars
            if len(output) > max_length:
                output = output[:max_length] + f"\n... [truncated, {len(output)} total chars]"

            if process.returncode != 0:
                log.info("Shell command exited non-zero", command=action.command, returncode=process.returncode)
            return ToolResult(
                success=process.returncode == 0,
                content=output or "[no output]",
            )

        except OSError as e:
            log.error("Shell command failed", command=action.command, error=str(e))
            return ToolResult(success=False, error=str(e))
