from .coordinator import OnboardingCoordinator, OnboardingState
from .evaluator import evaluate
from .gate import OnboardingGate
from .identity_state import IdentityQuery, IdentityStateSource
from .registry import (
    CoordinatorRegistry,
    get_coordinator,
    onboarding_lifecycle,
    register,
    require_onboarding,
    unregister,
)

__all__ = [
    "CoordinatorRegistry",
    "IdentityQuery",
    "IdentityStateSource",
    "OnboardingCoordinator",
    "OnboardingGate",
    "OnboardingState",
    "evaluate",
    "get_coordinator",
    "onboarding_lifecycle",
    "register",
    "require_onboarding",
    "unregister",
]
