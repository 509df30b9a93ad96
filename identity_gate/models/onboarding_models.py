from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Union


class OnboardingStep(str, Enum):
    CONNECT_WALLET = "connectWallet"
    SIGN_WITH_ETHEREUM = "signWithEthereum"
    CREATE_SESSION_KEY = "createSessionKey"


StepsLike = Union[Mapping[str, bool], Iterable[Union[OnboardingStep, str]]]


def normalize_steps(steps: StepsLike) -> frozenset:
    """Accepts a {"connectWallet": True, ...} mapping or an iterable of steps."""
    if isinstance(steps, Mapping):
        names = [name for name, required in steps.items() if required]
    elif isinstance(steps, (str, OnboardingStep)):
        names = [steps]
    else:
        names = list(steps)
    return frozenset(OnboardingStep(name) for name in names)


@dataclass(frozen=True)
class QueryState:
    """What a reactive identity provider exposes."""
    data: Any = None
    is_loading: bool = False
    error: Optional[BaseException] = None
    is_fetched: bool = False

    @property
    def is_settled(self) -> bool:
        return self.is_fetched or self.error is not None


@dataclass(frozen=True)
class IdentityState:
    wallet_connected: bool = False
    wallet_connecting: bool = False
    authenticated: bool = False
    has_session_key: bool = False
    auth_query: QueryState = QueryState()
    session_key_query: QueryState = QueryState()


@dataclass(frozen=True)
class Evaluation:
    ready: bool
    loading: bool
    error: Optional[BaseException] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class OnboardingRequest:
    steps: frozenset
    on_complete: Callable[[], Any]
    future: Any = None


@dataclass(frozen=True)
class OnboardingSnapshot:
    """Read-only view handed to the dialog controller."""
    current_request: Optional[OnboardingRequest]
    is_open: bool
    state: str
