"""
Mail notification transport using the system ``mail`` command.

Hands the message to the local MTA the same way an operator would from a
shell: the body is piped to ``mail -s <subject> <address>``.
"""

import asyncio
from typing import Sequence

import structlog

from logarchive.errors import NotifyError
from logarchive.monitoring.notifications.base import NotificationTransport

logger = structlog.get_logger(__name__)


class MailCommandTransport(NotificationTransport):
    """Deliver notifications through the local ``mail`` command."""

    name = "mail"

    def __init__(self, mail_command: str = "mail", timeout_seconds: float = 60.0):
        self.mail_command = mail_command
        self.timeout_seconds = timeout_seconds

    def build_command(self, address: str, subject: str) -> Sequence[str]:
        return [self.mail_command, "-s", subject, address]

    async def send(self, address: str, subject: str, body: str) -> None:
        command = self.build_command(address, subject)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise NotifyError(
                f"'{self.mail_command}' command not found",
                detail="Make sure the 'mail' command is installed and configured.",
            )
        except OSError as e:
            raise NotifyError(f"Cannot run '{self.mail_command}'", detail=str(e))

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(body.encode("utf-8")), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise NotifyError(f"'{self.mail_command}' timed out after {self.timeout_seconds:.0f}s")

        if process.returncode != 0:
            raise NotifyError(
                f"'{self.mail_command}' exited with status {process.returncode}",
                detail=stderr.decode("utf-8", errors="replace").strip() or None,
            )

        logger.info("Mail handed to local MTA", recipient=address, subject=subject)
