"""
Common lifecycle for the long-lived services owned by ServiceContainer.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from utils.logging import get_logger


class BaseService(ABC):
    """
    A named service with one-time async startup and best-effort teardown.

    Subclasses put their work in ``_initialize_impl`` / ``_shutdown_impl`` and
    may expose counters through ``status_details``.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = get_logger(f"services.{name}")
        self._initialized = False
        self._startup_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Run ``_initialize_impl`` once; concurrent callers wait for the first."""
        async with self._startup_lock:
            if self._initialized:
                return
            try:
                await self._initialize_impl()
            except Exception as e:
                self.logger.exception("%s service failed to start", self.name, exc_info=e)
                raise
            self._initialized = True
            self.logger.debug("%s service ready", self.name)

    async def shutdown(self) -> None:
        """Stop the service. Errors are logged; the service is marked stopped regardless."""
        if not self._initialized:
            return
        try:
            await self._shutdown_impl()
        except Exception as e:
            self.logger.exception("%s service did not stop cleanly", self.name, exc_info=e)
        finally:
            self._initialized = False
            self.logger.debug("%s service stopped", self.name)

    @abstractmethod
    async def _initialize_impl(self) -> None: ...

    async def _shutdown_impl(self) -> None:
        return None

    def status_details(self) -> dict[str, Any]:
        return {}

    async def health_check(self) -> dict[str, Any]:
        """Readiness flag plus whatever ``status_details`` reports."""
        report: dict[str, Any] = {"service": self.name, "ready": self._initialized}
        report.update(self.status_details())
        return report
