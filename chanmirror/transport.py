"""Send command invocation for the messaging target."""

from __future__ import annotations

import shlex
import shutil
import subprocess
from dataclasses import dataclass

from .constants import DEFAULT_COMMAND_TEMPLATE, DEFAULT_SEND_TIMEOUT_SECONDS
from .errors import MirrorError

TARGET_PLACEHOLDER = "{target}"
MESSAGE_PLACEHOLDER = "{message}"


@dataclass(frozen=True)
class SendResult:
    """Outcome of one send command.

    Attributes:
        ok: True when the command exited with status 0.
        returncode: Exit status, or None when the command never finished.
        detail: stderr tail or failure reason for logs.
    """

    ok: bool
    returncode: int | None = None
    detail: str = ""


class CommandTransport:
    """Run a fixed command template once per outgoing message.

    In argv mode the template is split once with `shlex.split` and the
    placeholders are substituted inside each token, so the message never goes
    through a shell. In shell mode the values are quoted with `shlex.quote`.
    """

    def __init__(
        self,
        template: str = DEFAULT_COMMAND_TEMPLATE,
        timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        *,
        shell: bool = False,
    ) -> None:
        """Initialize the transport.

        Args:
            template: Command with `{target}` and `{message}` placeholders.
            timeout_seconds: Upper bound for one send.
            shell: Run the formatted template through the shell.
        """
        if MESSAGE_PLACEHOLDER not in template:
            raise MirrorError("validation error: send command must contain {message}")
        if timeout_seconds <= 0:
            raise MirrorError("validation error: send timeout must be positive")
        self.template = template
        self.timeout_seconds = timeout_seconds
        self.shell = shell
        self._argv_template = None if shell else shlex.split(template)
        if self._argv_template is not None and not self._argv_template:
            raise MirrorError("validation error: send command is empty")

    def build_command(self, target_id: str, message: str) -> list[str] | str:
        """Build the argv list (or shell string) for one send.

        Args:
            target_id: Messaging target identifier.
            message: Final, already tagged message text.

        Returns:
            argv list in argv mode, command string in shell mode.
        """
        if self._argv_template is None:
            return self.template.replace(
                TARGET_PLACEHOLDER, shlex.quote(target_id)
            ).replace(MESSAGE_PLACEHOLDER, shlex.quote(message))

        # substitute per token so the message stays a single argument
        return [
            token.replace(TARGET_PLACEHOLDER, target_id).replace(MESSAGE_PLACEHOLDER, message)
            for token in self._argv_template
        ]

    def executable_available(self) -> bool:
        """Return true when the argv-mode executable resolves on PATH."""
        if self._argv_template is None:
            return True
        return shutil.which(self._argv_template[0]) is not None

    def send(self, target_id: str, message: str) -> SendResult:
        """Run the send command.

        Args:
            target_id: Messaging target identifier.
            message: Final, already tagged message text.

        Returns:
            Send outcome. Failures are returned, not raised.
        """
        command = self.build_command(target_id, message)
        try:
            result = subprocess.run(
                command,
                shell=self.shell,
                text=True,
                capture_output=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return SendResult(ok=False, detail=f"timed out after {self.timeout_seconds:g}s")
        except OSError as exc:
            return SendResult(ok=False, detail=str(exc))
        except ValueError as exc:
            # unencodable argv text or undecodable command output
            return SendResult(ok=False, detail=f"{type(exc).__name__}: {exc}")

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            return SendResult(
                ok=False,
                returncode=result.returncode,
                detail=stderr[-500:] or f"exit status {result.returncode}",
            )
        return SendResult(ok=True, returncode=0)
