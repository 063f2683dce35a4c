"""Permission Guard - Who may act on a signature request"""
from typing import Iterable, List, Optional

from ..domain.models import ActorContext, SignatureRequest, Signer
from ..domain.enums import SigningOrder, SignerStatus
from ..domain.errors import AuthorizationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for signature operations

    Rules:
    - The initiator manages the request (update, cancel, delete, extend, bulk)
    - The initiator and bound signers may view it
    - A signer may only act on their own signer row
    """

    @staticmethod
    def identity_matches(
        user_id: Optional[str],
        email: Optional[str],
        target_user_id: Optional[str],
        target_email: Optional[str]
    ) -> bool:
        """User ID match first, then case-insensitive email"""
        if user_id and target_user_id and user_id == target_user_id:
            return True
        if email and target_email and email.lower() == target_email.lower():
            return True
        return False

    def is_initiator(self, actor: ActorContext, request: SignatureRequest) -> bool:
        """Match by user ID, falling back to the initiator's email"""
        return actor.matches(request.initiated_by, request.initiator_email)

    def is_signer(self, actor: ActorContext, signer: Signer) -> bool:
        return actor.matches(signer.user_id, signer.signer_email)

    def can_view_request(
        self,
        user_id: Optional[str],
        email: Optional[str],
        request: SignatureRequest,
        signers: Iterable[Signer]
    ) -> bool:
        if self.identity_matches(user_id, email, request.initiated_by, request.initiator_email):
            return True
        return any(self.identity_matches(user_id, email, s.user_id, s.signer_email) for s in signers)

    def require_initiator(self, actor: ActorContext, request: SignatureRequest, action: str) -> None:
        """Raise AuthorizationError unless the actor initiated the request"""
        if not self.is_initiator(actor, request):
            logger.info(
                f"Denied {action}: {actor.user_id} is not the initiator",
                extra={"request_id": request.request_id, "actor_id": actor.user_id, "action": action}
            )
            raise AuthorizationError(
                f"Only the request initiator can {action} this request",
                details={"request_id": request.request_id, "action": action}
            )

    def require_signer(self, actor: ActorContext, signer: Signer) -> None:
        if not self.is_signer(actor, signer):
            raise AuthorizationError(
                "You are not the assigned signer",
                details={"signer_id": signer.signer_id}
            )

    @staticmethod
    def blocking_signers(request: SignatureRequest, signer: Signer, signers: List[Signer]) -> List[Signer]:
        """Earlier signers that have not signed yet (always empty for parallel requests)"""
        if request.signing_order == SigningOrder.PARALLEL:
            return []
        return [
            s for s in signers
            if s.signing_order < signer.signing_order and s.status != SignerStatus.SIGNED
        ]
