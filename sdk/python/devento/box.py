"""High-level handle for a single box"""

import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Union

import requests

from .commands import CommandExecutor
from .exceptions import APIError, CommandTimeoutError, DeventoError, ResourceTimeoutError
from .models import (
    Box,
    BoxStatus,
    CommandOptions,
    CommandResult,
    ExposedPort,
    Snapshot,
    SnapshotStatus,
)
from .polling import CancellationToken, wait_for_status

if TYPE_CHECKING:
    from .client import DeventoClient

logger = logging.getLogger(__name__)


class BoxHandle:
    """Operations on one box.

    The handle caches the last fetched ``Box``; ``refresh`` replaces it as a
    whole. Commands run through a ``CommandExecutor`` that keeps no state
    between calls, so ``run`` may be called from several threads at once.
    """

    def __init__(self, client: "DeventoClient", box: Box):
        self.client = client
        self.box = box

    @property
    def id(self) -> str:
        return self.box.id

    @property
    def status(self) -> Union[BoxStatus, str]:
        return self.box.status

    @property
    def metadata(self) -> Dict[str, str]:
        return self.box.metadata

    @property
    def hostname(self) -> str:
        return self.box.hostname

    def refresh(self) -> Box:
        """Re-fetch the box state from the service"""
        response = self.client._request("GET", f"/boxes/{self.id}")
        self.box = Box.from_dict(response.get("data", {}))
        return self.box

    def wait_until_ready(
        self,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Box:
        """
        Block until the box is running.

        Args:
            timeout: Seconds to wait; defaults to the client's ``box_timeout``
            poll_interval: Seconds between refreshes
            cancel: Token that aborts the wait

        Raises:
            APIError: The box ended up failed or terminated
            ResourceTimeoutError: The box was still starting at the deadline
            CancelledError: ``cancel`` fired while waiting
        """
        if timeout is None:
            timeout = self.client.config.box_timeout
        if poll_interval is None:
            poll_interval = self.client.config.poll_interval

        def failed(box: Box) -> DeventoError:
            return APIError(
                409,
                f"box {box.id} failed to start: {box.details}",
                code="box_failed",
            )

        return wait_for_status(
            self.refresh,
            ready={BoxStatus.RUNNING},
            failed={BoxStatus.FAILED, BoxStatus.TERMINATED},
            on_failed=failed,
            on_timeout=lambda: ResourceTimeoutError(self.id, timeout),
            timeout=timeout,
            poll_interval=poll_interval,
            cancel=cancel,
        )

    def run(
        self,
        command: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        on_stdout: Optional[Callable[[str], None]] = None,
        on_stderr: Optional[Callable[[str], None]] = None,
        stream: Optional[bool] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> CommandResult:
        """
        Execute a shell command in the box.

        Passing ``on_stdout`` or ``on_stderr`` streams output line by line over
        a live connection; otherwise the command is polled until it finishes.

        Args:
            command: Shell command text
            timeout: Seconds to wait for completion (default 5 minutes)
            poll_interval: Seconds between status fetches in polling mode
            on_stdout: Called once per complete stdout line
            on_stderr: Called once per complete stderr line
            stream: Force streaming (True) or polling (False)
            cancel: Token that aborts the wait

        Returns:
            CommandResult with stdout, stderr, status and exit_code
        """
        options = CommandOptions(
            timeout=timeout if timeout is not None else self.client.config.command_timeout,
            poll_interval=(
                poll_interval if poll_interval is not None else self.client.config.poll_interval
            ),
            on_stdout=on_stdout,
            on_stderr=on_stderr,
            stream=stream,
        )
        return CommandExecutor(self.client, self.id).run(command, options, cancel)

    def stop(self) -> None:
        """Stop and delete the box"""
        logger.debug("stopping box %s", self.id)
        self.client._request("DELETE", f"/boxes/{self.id}")

    def close(self) -> None:
        """Alias for stop"""
        self.stop()

    def get_public_url(self, port: int) -> str:
        """Public HTTPS URL for a port inside the box"""
        if not self.box.hostname:
            raise DeventoError(
                "box does not have a hostname. Ensure the box is created and running"
            )
        return f"https://{port}-{self.box.hostname}"

    def expose_port(self, target_port: int) -> ExposedPort:
        """
        Map a port inside the box to a temporary external proxy port.

        Each call creates a new mapping; an existing one cannot be renewed.
        Fails with a 409 ``APIError`` when the box is not running.
        """
        response = self.client._request(
            "POST", f"/boxes/{self.id}/expose_port", data={"port": target_port}
        )
        return ExposedPort.from_dict(response.get("data", {}))

    def pause(self) -> Box:
        """Pause a running box"""
        self.client._request("POST", f"/boxes/{self.id}/pause")
        return self.refresh()

    def resume(self) -> Box:
        """Resume a paused box"""
        self.client._request("POST", f"/boxes/{self.id}/resume")
        return self.refresh()

    # Snapshot methods
    def list_snapshots(self) -> List[Snapshot]:
        response = self.client._request("GET", f"/boxes/{self.id}/snapshots")
        return [Snapshot.from_dict(s) for s in response.get("data", [])]

    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        response = self.client._request("GET", f"/boxes/{self.id}/snapshots/{snapshot_id}")
        return Snapshot.from_dict(response.get("data", {}))

    def create_snapshot(
        self, label: Optional[str] = None, description: Optional[str] = None
    ) -> Snapshot:
        """Start a snapshot; it is usable once ``wait_snapshot_ready`` returns"""
        data = {}
        if label:
            data["label"] = label
        if description:
            data["description"] = description
        response = self.client._request("POST", f"/boxes/{self.id}/snapshots", data=data)
        return Snapshot.from_dict(response.get("data", {}))

    def restore_snapshot(self, snapshot_id: str) -> Snapshot:
        response = self.client._request(
            "POST", f"/boxes/{self.id}/restore", data={"snapshot_id": snapshot_id}
        )
        return Snapshot.from_dict(response.get("data", {}))

    def delete_snapshot(self, snapshot_id: str) -> Snapshot:
        response = self.client._request(
            "DELETE", f"/boxes/{self.id}/snapshots/{snapshot_id}"
        )
        return Snapshot.from_dict(response.get("data", {}))

    def wait_snapshot_ready(
        self,
        snapshot_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Snapshot:
        """
        Block until a snapshot is ready.

        Defaults match ``wait_until_ready``.

        Raises:
            APIError: The snapshot ended in ``error`` or ``deleted``
            CommandTimeoutError: Still not ready at the deadline; ``timeout_ms``
                carries the deadline in milliseconds
        """
        if timeout is None:
            timeout = self.client.config.box_timeout
        if poll_interval is None:
            poll_interval = self.client.config.poll_interval

        def failed(snapshot: Snapshot) -> DeventoError:
            status = getattr(snapshot.status, "value", snapshot.status)
            return APIError(
                409,
                f"snapshot {snapshot_id} ended with status: {status}",
                code="snapshot_failed",
            )

        return wait_for_status(
            lambda: self.get_snapshot(snapshot_id),
            ready={SnapshotStatus.READY},
            failed={SnapshotStatus.ERROR, SnapshotStatus.DELETED},
            on_failed=failed,
            on_timeout=lambda: CommandTimeoutError(snapshot_id, int(timeout * 1000)),
            timeout=timeout,
            poll_interval=poll_interval,
            cancel=cancel,
        )

    def __enter__(self) -> "BoxHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.stop()
        except (requests.exceptions.RequestException, DeventoError) as e:
            if exc_type is None:
                raise
            logger.error("failed to stop box %s: %s", self.id, e)
