import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from .. import config
from ..models.onboarding_models import StepsLike
from .coordinator import OnboardingCoordinator
from .identity_state import IdentityStateSource

logger = logging.getLogger(__name__)


class CoordinatorRegistry:
    """Holds the one coordinator reachable from code outside any component tree."""

    def __init__(self):
        self._coordinator: Optional[OnboardingCoordinator] = None

    def register(self, coordinator: OnboardingCoordinator) -> None:
        if self._coordinator is not None and self._coordinator is not coordinator:
            logger.warning("Replacing the registered onboarding coordinator.")
        self._coordinator = coordinator

    def unregister(self, coordinator: OnboardingCoordinator) -> None:
        if self._coordinator is coordinator:
            self._coordinator = None

    def get(self) -> Optional[OnboardingCoordinator]:
        return self._coordinator

    def require_onboarding(self, steps: StepsLike, on_complete: Callable[[], Any]) -> bool:
        """Delegates to the registered coordinator. Returns False when none is registered."""
        coordinator = self._coordinator
        if coordinator is None:
            logger.warning("require_onboarding called with no onboarding coordinator registered.")
            return False
        coordinator.require_onboarding(steps, on_complete)
        return True


default_registry = CoordinatorRegistry()


def register(coordinator: OnboardingCoordinator) -> None:
    default_registry.register(coordinator)


def unregister(coordinator: OnboardingCoordinator) -> None:
    default_registry.unregister(coordinator)


def get_coordinator() -> Optional[OnboardingCoordinator]:
    return default_registry.get()


def require_onboarding(steps: StepsLike, on_complete: Callable[[], Any]) -> bool:
    return default_registry.require_onboarding(steps, on_complete)


@asynccontextmanager
async def onboarding_lifecycle(
    identity: IdentityStateSource,
    settle_delay: float = config.ONBOARDING_SETTLE_DELAY_SECONDS,
    registry: CoordinatorRegistry = default_registry,
):
    """Starts and registers a coordinator for the application's lifetime; tears it down on exit."""
    coordinator = OnboardingCoordinator(identity, settle_delay=settle_delay)
    await coordinator.start()
    registry.register(coordinator)
    try:
        yield coordinator
    finally:
        registry.unregister(coordinator)
        await coordinator.stop()
