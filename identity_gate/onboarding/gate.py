from typing import TYPE_CHECKING, Optional

from ..models.onboarding_models import Evaluation, StepsLike, normalize_steps

if TYPE_CHECKING:
    from .coordinator import OnboardingCoordinator


class OnboardingGate:
    """
    Per-call-site view of the onboarding gate for one set of steps.

    Example::

        gate = coordinator.gate({"connectWallet": True, "signWithEthereum": True})
        if gate.is_loading:
            return
        if not gate.require():
            # gate.is_error tells "something failed" apart from "steps outstanding"
            return
        do_protected_action()
    """

    def __init__(self, coordinator: "OnboardingCoordinator", steps: StepsLike):
        self.coordinator = coordinator
        self.steps = normalize_steps(steps)

    @property
    def evaluation(self) -> Evaluation:
        return self.coordinator.evaluate(self.steps)

    @property
    def ready(self) -> bool:
        return self.evaluation.ready

    @property
    def is_loading(self) -> bool:
        return self.evaluation.loading

    @property
    def is_error(self) -> bool:
        return self.evaluation.is_error

    @property
    def error(self) -> Optional[BaseException]:
        return self.evaluation.error

    def require(self) -> bool:
        return self.coordinator.require(self.steps)

    def show_dialog(self) -> None:
        self.coordinator.require_onboarding(self.steps, lambda: None)
