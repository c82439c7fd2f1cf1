"""
KernelSession: runs code on Jupyter kernels and feeds their output to the aggregator.
"""

import logging
import queue
from pathlib import Path
from typing import Any, Callable, Optional

from jupyter_client import KernelManager

from nbcards.aggregator import MessageAggregator
from nbcards.cards import Card
from nbcards.errors import KernelExecutionError, KernelUnavailableError
from nbcards.utils import normalize_newlines

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class KernelSession:
    """
    One Jupyter kernel per flavor, started on demand.

    Every IOPub message produced by a request is handed to the aggregator
    until the kernel goes idle, at which point the aggregator's card is
    returned.
    """

    def __init__(
        self,
        aggregator: MessageAggregator,
        kernel_manager_factory: Callable[..., Any] = KernelManager,
        workspace: Optional[Path] = None,
    ):
        self.aggregator = aggregator
        self.kernel_manager_factory = kernel_manager_factory
        self.workspace = workspace
        self._kernels: dict[str, tuple[Any, Any]] = {}

    def __enter__(self) -> "KernelSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def flavors(self) -> list[str]:
        return list(self._kernels)

    def start_kernel(self, flavor: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Start the kernel for flavor unless it is already running."""
        if flavor in self._kernels:
            return
        manager = self.kernel_manager_factory(kernel_name=flavor)
        try:
            manager.start_kernel()
            client = manager.blocking_client()
            client.start_channels()
            client.wait_for_ready(timeout=timeout)
        except Exception as exc:
            raise KernelExecutionError(f"Could not start the {flavor} kernel: {exc}") from exc
        self._kernels[flavor] = (manager, client)
        logger.info("Started %s kernel", flavor)

        if flavor == "python3":
            self._run_silently(client, "%matplotlib inline", timeout)
            if self.workspace is not None:
                self._run_silently(client, f"%cd {self.workspace}", timeout)

    def _run_silently(self, client, code: str, timeout: float) -> None:
        """Run setup code without producing a card."""
        msg_id = client.execute(code, silent=True, store_history=False)
        while True:
            try:
                reply = client.get_shell_msg(timeout=timeout)
            except queue.Empty as exc:
                raise KernelExecutionError(f"No reply to setup code {code!r}") from exc
            if reply.get("parent_header", {}).get("msg_id") == msg_id:
                return

    def execute(self, source: str, flavor: str, timeout: float = DEFAULT_TIMEOUT) -> Card:
        """
        Execute source on the kernel for flavor.

        Args:
            source: Code to execute
            flavor: Kernel flavor, which must have been started
            timeout: Seconds to wait for each message

        Returns:
            The card produced by the execution

        Raises:
            KernelUnavailableError: the flavor has no running kernel
            KernelExecutionError: the kernel stopped responding
        """
        if flavor not in self._kernels:
            raise KernelUnavailableError(flavor)
        _, client = self._kernels[flavor]

        msg_id = client.execute(
            normalize_newlines(source),
            allow_stdin=False,
            stop_on_error=False,
        )

        while True:
            try:
                msg = client.get_iopub_msg(timeout=timeout)
            except queue.Empty as exc:
                raise KernelExecutionError(
                    f"The {flavor} kernel did not respond within {timeout} seconds"
                ) from exc

            if msg.get("parent_header", {}).get("msg_id") != msg_id:
                continue

            card = self.aggregator.feed(msg, flavor)
            if card is not None:
                return card

    def restart_kernels(self) -> None:
        """Shut down every kernel and start the same flavors again."""
        flavors = self.flavors
        self.shutdown()
        self.aggregator.reset()
        for flavor in flavors:
            self.start_kernel(flavor)
        logger.info("Restarted kernels: %s", ", ".join(flavors) or "none")

    def shutdown(self) -> None:
        """Stop every kernel, even if stopping one of them fails."""
        kernels, self._kernels = self._kernels, {}
        for flavor, (manager, client) in kernels.items():
            try:
                client.stop_channels()
            except Exception:
                logger.exception("Could not stop channels of the %s kernel", flavor)
            try:
                manager.shutdown_kernel(now=True)
            except Exception:
                logger.exception("Could not shut down the %s kernel", flavor)
                continue
            logger.info("Stopped %s kernel", flavor)
