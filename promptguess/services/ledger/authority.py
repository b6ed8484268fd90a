from promptguess.backend.models import EmissionState
from promptguess.lib.exceptions import UnauthorizedError
from promptguess.lib.logger import configure_logger

logger = configure_logger(__name__)


class AuthorityGuard:
    """Gates rate-policy changes on the registered authority identity.

    Reward issuance is never gated here; only operations that change the
    emission policy or the authority itself are.
    """

    def is_authorized(self, caller_identity: str, state: EmissionState) -> bool:
        return bool(caller_identity) and caller_identity == state.authority

    def authorize(
        self, caller_identity: str, state: EmissionState, operation: str = "admin"
    ) -> None:
        """Raise UnauthorizedError unless the caller is the registered authority."""
        if not self.is_authorized(caller_identity, state):
            logger.warning(
                "Unauthorized ledger operation rejected",
                extra={
                    "caller_identity": caller_identity,
                    "operation": operation,
                    "event_type": "authority_rejected",
                },
            )
            raise UnauthorizedError(caller_identity, operation)
