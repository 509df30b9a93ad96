from ..models.onboarding_models import Evaluation, IdentityState, OnboardingStep, StepsLike, normalize_steps


def _step_satisfied(step: OnboardingStep, state: IdentityState) -> bool:
    if step is OnboardingStep.CONNECT_WALLET:
        return state.wallet_connected
    if step is OnboardingStep.SIGN_WITH_ETHEREUM:
        return state.wallet_connected and state.authenticated
    if step is OnboardingStep.CREATE_SESSION_KEY:
        return state.wallet_connected and state.has_session_key
    return False


def evaluate(steps: StepsLike, state: IdentityState) -> Evaluation:
    """
    Maps requested onboarding steps and the current identity state to
    readiness, loading and error.

    Unrequested steps are vacuously satisfied. Auth and session-key lookups
    only count as loading once a wallet is connected, and not at all while
    ``connectWallet`` is requested and the wallet is still disconnected.
    """
    requested = normalize_steps(steps)

    ready = all(_step_satisfied(step, state) for step in requested)

    require_connect = OnboardingStep.CONNECT_WALLET in requested
    require_auth = OnboardingStep.SIGN_WITH_ETHEREUM in requested
    require_session = OnboardingStep.CREATE_SESSION_KEY in requested

    missing_auth = require_auth and state.wallet_connected and not state.auth_query.is_settled
    missing_session = require_session and state.wallet_connected and not state.session_key_query.is_settled

    if state.wallet_connecting:
        loading = True
    elif require_connect and not state.wallet_connected:
        loading = False
    else:
        loading = missing_auth or missing_session

    error = None
    if require_auth and state.auth_query.error is not None:
        error = state.auth_query.error
    elif require_session and state.session_key_query.error is not None:
        error = state.session_key_query.error

    return Evaluation(ready=ready, loading=loading, error=error)
