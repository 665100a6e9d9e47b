"""Application bootstrap for workagent.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> hub client -> spoke client -> REST mapper
              -> controllers -> REST

Shutdown is fully graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single component failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from workagent.config import load_config
from workagent.models.config import WorkAgentConfig
from workagent.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from workagent.cluster.discovery import RESTMapper
    from workagent.cluster.kube import KubeObjectStore
    from workagent.controllers.manager import ControllerManager

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class WorkAgentApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` on an app that was never started (or already stopped) is safe.
    """

    def __init__(self, config: WorkAgentConfig | None = None) -> None:
        self.config: WorkAgentConfig | None = config

        self._hub: KubeObjectStore | None = None
        self._spoke: KubeObjectStore | None = None
        self._rest_mapper: RESTMapper | None = None
        self._manager: ControllerManager | None = None
        self._rest_server: object | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) turns this into a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, cluster_namespace=self.config.cluster.cluster_namespace)
        self._log = get_logger("app")
        self._log.info("workagent starting", version=_workagent_version())

        # --- 3. Cluster clients -----------------------------------------
        await self._start_clients()

        # --- 4. REST mapper ---------------------------------------------
        await self._start_rest_mapper()

        # --- 5. Controllers ---------------------------------------------
        await self._start_controllers()

        # --- 6. REST API ------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("workagent started", port=self.config.api.port if self.config.api.enabled else None)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_clients(self) -> None:
        """Connect to the hub and the spoke cluster."""
        assert self._log is not None
        assert self.config is not None
        from workagent.cluster.kube import KubeObjectStore

        self._log.debug("starting cluster clients")
        if not self.config.cluster.hub_kubeconfig:
            raise _ComponentError("hub_client", ValueError("WORKAGENT_HUB_KUBECONFIG is not set"))
        try:
            self._hub = await KubeObjectStore.connect(self.config.cluster.hub_kubeconfig, name="hub")
        except Exception as exc:
            raise _ComponentError("hub_client", exc) from exc
        try:
            self._spoke = await KubeObjectStore.connect(self.config.cluster.spoke_kubeconfig, name="spoke")
        except Exception as exc:
            raise _ComponentError("spoke_client", exc) from exc

    async def _start_rest_mapper(self) -> None:
        """Build the process-wide REST mapper over spoke discovery."""
        assert self._log is not None
        assert self._spoke is not None
        from workagent.cluster.discovery import RESTMapper

        self._rest_mapper = RESTMapper(self._spoke.discovery())
        self._log.info("rest mapper ready")

    async def _start_controllers(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._hub is not None and self._spoke is not None and self._rest_mapper is not None
        self._log.debug("starting controllers")
        try:
            from workagent.controllers.manager import ControllerManager

            manager = ControllerManager(self._hub, self._spoke, self._rest_mapper, self.config)
            await manager.start()
            self._manager = manager
        except Exception as exc:
            raise _ComponentError("controllers", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        if not self.config.api.enabled:
            self._log.info("rest api disabled")
            return
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from workagent.api import create_app

            fastapi_app = create_app(manager=self._manager, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("workagent shutting down")

        self._running = False

        # Stop the watches and queues before the server so no new reconcile starts.
        await self._stop_component("controllers", self._manager)
        self._manager = None

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        self._rest_mapper = None
        await self._stop_component("spoke_client", self._spoke, method="close")
        await self._stop_component("hub_client", self._hub, method="close")
        self._spoke = None
        self._hub = None

        log.info("workagent stopped")

    async def _stop_component(self, name: str, component: object | None, method: str = "stop") -> None:
        """Call *method* on a component if it has it, logging any error."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, method, None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _workagent_version() -> str:
    from workagent import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: WorkAgentConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = WorkAgentApp(config)
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app.running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
