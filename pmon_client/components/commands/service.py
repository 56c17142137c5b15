"""
Project commands: manager control, instance restarts, read-only listings.

Every state-changing call follows the single-use token rule: acquire, send,
rotate. A 403 rotates the token once and fails the call; it is never replayed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, TypeVar

from pmon_client.components.security.token import TokenManager
from pmon_client.config.constants import ManagerAction, NotificationLevel
from pmon_client.config.logging import get_logger
from pmon_client.infrastructure.http import ServiceHttpClient
from pmon_client.schemas import DeploymentHistory, LogFileListing
from pmon_client.utils.exceptions import ForbiddenError, TokenUnavailableError, TransportError

if TYPE_CHECKING:
    from pmon_client.collaborators import Collaborator

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one command: ok flag and a message fit for display."""

    ok: bool
    message: str


class ProjectCommandService:
    """
    Sends project commands with the token lifecycle applied.

    Usage:
        result = await commands.manager_command("restart", 5, "scada-01")
        ok, failed = await commands.restart_all(["scada-01", "scada-02"])
    """

    def __init__(
        self,
        http: ServiceHttpClient,
        tokens: TokenManager,
        collaborator: Collaborator,
    ) -> None:
        self._http = http
        self._tokens = tokens
        self._collaborator = collaborator

    async def _with_token(self, send: Callable[[str], Awaitable[T]]) -> T:
        """
        Run one state-changing request.

        Raises:
            TokenUnavailableError: No token could be obtained.
            ForbiddenError: The service rejected the token (already rotated).
            TransportError: Any other failure (token consumed).
        """
        token = await self._tokens.acquire()
        try:
            result = await send(token)
        except ForbiddenError:
            await self._tokens.rotate()
            raise
        except TransportError:
            self._tokens.consume()
            raise
        await self._tokens.rotate()
        return result

    def _security_error(self) -> CommandResult:
        self._collaborator.notify(
            NotificationLevel.ERROR, "Security Error", "Invalid or expired CSRF token"
        )
        return CommandResult(False, "Invalid or expired CSRF token")

    def _token_error(self) -> CommandResult:
        self._collaborator.notify(
            NotificationLevel.ERROR, "Security Error", "Could not obtain CSRF token"
        )
        return CommandResult(False, "Could not obtain CSRF token")

    # =========================================================================
    # Manager and instance control
    # =========================================================================

    async def manager_command(
        self,
        action: ManagerAction | str,
        shm_id: int,
        hostname: str,
    ) -> CommandResult:
        """
        Start, stop or restart one manager.

        Args:
            action: start, stop or restart.
            shm_id: Manager index in the instance's process table.
            hostname: Instance the manager runs on.

        Returns:
            CommandResult; failures are also shown as notifications.
        """
        action = ManagerAction(action)
        try:
            reply = await self._with_token(
                lambda token: self._http.manager_command(action.value, shm_id, hostname, token)
            )
        except TokenUnavailableError:
            return self._token_error()
        except ForbiddenError:
            return self._security_error()
        except TransportError as e:
            self._collaborator.notify(
                NotificationLevel.ERROR, "Manager Control Failed", f"Network error: {e.reason}"
            )
            return CommandResult(False, e.reason)

        if reply.success:
            message = reply.message or f"Manager {action.value} command sent"
            self._collaborator.notify(NotificationLevel.SUCCESS, "Manager Control", message)
            return CommandResult(True, message)

        message = reply.error or f"Failed to {action.value} manager"
        self._collaborator.notify(NotificationLevel.ERROR, "Manager Control Failed", message)
        return CommandResult(False, message)

    async def restart_instance(self, hostname: str, *, notify: bool = True) -> CommandResult:
        """Restart every manager of one instance."""
        try:
            await self._with_token(lambda token: self._http.restart_instance(hostname, token))
        except TokenUnavailableError:
            return self._token_error()
        except ForbiddenError:
            return self._security_error()
        except TransportError as e:
            if notify:
                self._collaborator.notify(NotificationLevel.ERROR, "Restart Failed", e.reason)
            return CommandResult(False, e.reason)

        message = f"Restart command sent to {hostname}"
        logger.info("Instance restart requested", hostname=hostname)
        if notify:
            self._collaborator.notify(NotificationLevel.SUCCESS, "Instance Restart", message)
        return CommandResult(True, message)

    async def restart_all(self, hostnames: Iterable[str]) -> tuple[int, int]:
        """
        Restart instances one after another, a fresh token for each.

        Returns:
            (succeeded, failed) counts. A summary notice is shown.
        """
        succeeded = failed = 0
        for hostname in hostnames:
            result = await self.restart_instance(hostname, notify=False)
            if result.ok:
                succeeded += 1
            else:
                failed += 1

        if failed == 0:
            self._collaborator.notify(
                NotificationLevel.SUCCESS,
                "Restart All",
                f"All {succeeded} instances restarting",
            )
        else:
            self._collaborator.notify(
                NotificationLevel.WARNING,
                "Restart All",
                f"{succeeded} succeeded, {failed} failed",
            )
        logger.info("Restart all finished", succeeded=succeeded, failed=failed)
        return succeeded, failed

    # =========================================================================
    # Read-only
    # =========================================================================

    async def deployment_history(self) -> DeploymentHistory:
        return await self._http.deployment_history()

    async def list_log_files(self) -> LogFileListing:
        return await self._http.list_log_files()
