import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from .. import config
from ..models.onboarding_models import (
    Evaluation,
    IdentityState,
    OnboardingRequest,
    OnboardingSnapshot,
    StepsLike,
    normalize_steps,
)
from .evaluator import evaluate
from .gate import OnboardingGate
from .identity_state import IdentityStateSource

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[OnboardingSnapshot], Any]


class OnboardingState(str, Enum):
    IDLE = "idle"
    OPEN = "open"
    COMPLETING = "completing"


def _noop() -> None:
    return None


class OnboardingCoordinator:
    """
    Process-wide onboarding gate.

    Holds at most one active OnboardingRequest. A gate call that finds its
    steps unsatisfied opens the request; identity changes are re-evaluated
    while it is open, and once satisfied the coordinator waits
    ``settle_delay`` seconds before firing the completion exactly once.

    A gate call while a request is active replaces it: the superseded
    request's future resolves False and its callback never fires.
    """

    def __init__(self, identity: IdentityStateSource, settle_delay: float = config.ONBOARDING_SETTLE_DELAY_SECONDS):
        self.identity = identity
        self.settle_delay = settle_delay
        self._state = OnboardingState.IDLE
        self._request: Optional[OnboardingRequest] = None
        self._settle_task: Optional[asyncio.Task] = None
        self._listeners: list[SnapshotListener] = []
        self._unsubscribe_identity: Optional[Callable[[], None]] = None
        self._callback_tasks: set[asyncio.Task] = set()

    # ---------- lifecycle ----------
    async def start(self) -> None:
        if self._unsubscribe_identity is not None:
            return
        self._unsubscribe_identity = self.identity.subscribe(self._on_identity_change)
        logger.info("Onboarding coordinator started.")

    async def stop(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None

        task = self._settle_task
        self._cancel_settle()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

        request = self._request
        self._request = None
        self._state = OnboardingState.IDLE
        if request is not None:
            self._resolve(request, False)
            self._notify()
        tasks = list(self._callback_tasks)
        for pending in tasks:
            pending.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()
        logger.info("Onboarding coordinator stopped.")

    @property
    def started(self) -> bool:
        return self._unsubscribe_identity is not None

    # ---------- read-only view ----------
    @property
    def state(self) -> OnboardingState:
        return self._state

    @property
    def current_request(self) -> Optional[OnboardingRequest]:
        return self._request

    @property
    def is_open(self) -> bool:
        return self._request is not None

    def snapshot(self) -> OnboardingSnapshot:
        return OnboardingSnapshot(current_request=self._request, is_open=self.is_open, state=self._state.value)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Onboarding listener failed: {e}", exc_info=True)

    # ---------- evaluation ----------
    def evaluate(self, steps: StepsLike) -> Evaluation:
        return evaluate(steps, self.identity.snapshot())

    def gate(self, steps: StepsLike) -> OnboardingGate:
        return OnboardingGate(self, steps)

    # ---------- gate operations ----------
    def require(self, steps: StepsLike) -> bool:
        """
        True when ``steps`` are already satisfied. Otherwise opens the gate and
        returns False; the caller is not resumed afterwards.
        """
        requested = normalize_steps(steps)
        if self.evaluate(requested).ready:
            return True
        self._open(requested, _noop)
        return False

    def require_onboarding(self, steps: StepsLike, on_complete: Callable[[], Any]) -> None:
        """Runs ``on_complete`` now if ready, else once the gate completes."""
        requested = normalize_steps(steps)
        if self.evaluate(requested).ready:
            self._invoke(on_complete)
            return
        self._open(requested, on_complete)

    def request(self, steps: StepsLike) -> "asyncio.Future[bool]":
        """
        Future form of ``require_onboarding``: resolves True on completion and
        False when the request is dismissed, replaced or the coordinator stops.
        """
        future = asyncio.get_running_loop().create_future()
        requested = normalize_steps(steps)
        if self.evaluate(requested).ready:
            future.set_result(True)
            return future
        self._open(requested, _noop, future)
        return future

    def complete(self) -> bool:
        """Completes the active request now, provided its steps are satisfied."""
        if self._request is None:
            return False
        if not self.evaluate(self._request.steps).ready:
            logger.warning("complete() called before the onboarding steps were satisfied; ignoring.")
            return False
        self._cancel_settle()
        self._finish()
        return True

    def close(self) -> None:
        """Dismisses the gate. A request already satisfied still completes."""
        if self._request is None:
            return
        if self._state is OnboardingState.COMPLETING:
            self._cancel_settle()
            self._finish()
            return
        request = self._request
        self._request = None
        self._state = OnboardingState.IDLE
        logger.info(f"Onboarding dismissed before completion: {sorted(s.value for s in request.steps)}")
        self._resolve(request, False)
        self._notify()

    # ---------- internals ----------
    def _open(self, steps: frozenset, on_complete: Callable[[], Any], future=None) -> None:
        if self._request is not None:
            logger.info("Replacing active onboarding request.")
            self._cancel_settle()
            self._resolve(self._request, False)
        if not self.started:
            logger.warning("Onboarding coordinator not started; the gate will not complete automatically.")

        self._request = OnboardingRequest(steps=steps, on_complete=on_complete, future=future)
        self._state = OnboardingState.OPEN
        logger.info(f"Onboarding gate opened for steps: {sorted(s.value for s in steps)}")
        self._notify()

    def _on_identity_change(self, identity_state: IdentityState) -> None:
        request = self._request
        if request is None:
            return
        ready = evaluate(request.steps, identity_state).ready

        if self._state is OnboardingState.OPEN and ready:
            self._state = OnboardingState.COMPLETING
            logger.info("Onboarding steps satisfied; completing after settle delay.")
            self._settle_task = asyncio.get_running_loop().create_task(self._settle(request))
            self._notify()
        elif self._state is OnboardingState.COMPLETING and not ready:
            logger.info("Identity state regressed during settle delay; reopening gate.")
            self._cancel_settle()
            self._state = OnboardingState.OPEN
            self._notify()

    async def _settle(self, request: OnboardingRequest) -> None:
        await asyncio.sleep(self.settle_delay)
        if self._request is request and self._state is OnboardingState.COMPLETING:
            self._settle_task = None
            self._finish()

    def _cancel_settle(self) -> None:
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = None

    def _finish(self) -> None:
        request = self._request
        self._request = None
        self._state = OnboardingState.IDLE
        logger.info(f"Onboarding completed: {sorted(s.value for s in request.steps)}")
        self._notify()
        self._invoke(request.on_complete)
        self._resolve(request, True)

    def _invoke(self, callback: Callable[[], Any]) -> None:
        try:
            result = callback()
        except Exception as e:
            logger.error(f"Onboarding completion callback failed: {e}", exc_info=True)
            return
        if asyncio.iscoroutine(result):
            try:
                task = asyncio.get_running_loop().create_task(result)
            except RuntimeError:
                result.close()
                logger.error("Async completion callback needs a running event loop; it was not run.")
                return
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_tasks.discard)
            task.add_done_callback(_log_callback_failure)

    @staticmethod
    def _resolve(request: OnboardingRequest, completed: bool) -> None:
        if request.future is not None and not request.future.done():
            request.future.set_result(completed)


def _log_callback_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Onboarding completion callback failed", exc_info=task.exception())
