"""Persistence Port - storage contract used by the signature engine"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..domain.enums import SignatureStatus, SignerStatus
from ..domain.models import SignatureRequest, Signer


class SignatureStore(ABC):
    """
    Storage for signature requests and their signers.

    Every method that changes status is conditional: it only applies when the
    stored row is still in one of the expected predecessor statuses and returns
    None when the condition no longer holds. Callers turn a None into the
    appropriate domain error.
    """

    # Requests

    @abstractmethod
    def insert_request(self, request: SignatureRequest) -> SignatureRequest:
        ...

    @abstractmethod
    def delete_request(self, request_id: str) -> None:
        """Hard delete, used only to roll back a failed creation"""

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[SignatureRequest]:
        ...

    @abstractmethod
    def get_requests(self, request_ids: Sequence[str]) -> List[SignatureRequest]:
        ...

    @abstractmethod
    def update_request(
        self,
        request_id: str,
        updates: Dict[str, Any],
        from_statuses: Sequence[SignatureStatus],
        extra_filter: Optional[Dict[str, Any]] = None,
        unset_fields: Sequence[str] = (),
    ) -> Optional[SignatureRequest]:
        """Conditional $set; None when the request is gone or not in from_statuses"""

    @abstractmethod
    def advance_completion(self, request_id: str, total_signers: int, now: datetime) -> Optional[SignatureRequest]:
        """
        Add one to completed_signers; sets status=completed and completed_at in the
        same update when the count reaches total_signers, in_progress otherwise.
        None when the request is terminal or already full.
        """

    @abstractmethod
    def record_view(self, request_id: str, now: datetime) -> Optional[SignatureRequest]:
        """Increment viewed_signers and move an initiated request to in_progress"""

    @abstractmethod
    def list_requests(
        self,
        initiated_by: Optional[str] = None,
        request_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[SignatureStatus]] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[SignatureRequest]:
        """
        Newest first. When both initiated_by and request_ids are given a request
        matches either of them.
        """

    @abstractmethod
    def count_requests(
        self,
        initiated_by: Optional[str] = None,
        request_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[SignatureStatus]] = None,
        search: Optional[str] = None,
    ) -> int:
        ...

    @abstractmethod
    def find_overdue_requests(self, now: datetime, limit: int) -> List[SignatureRequest]:
        ...

    @abstractmethod
    def find_requests_expiring_between(
        self,
        start: datetime,
        end: datetime,
        initiated_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SignatureRequest]:
        """Non-terminal requests with start <= expires_at < end, soonest first"""

    @abstractmethod
    def claim_expiration_warning(self, request_id: str, days: int, now: datetime) -> bool:
        """Record that the d-day warning went out; False if already recorded"""

    @abstractmethod
    def claim_reminder_slot(
        self,
        request_id: str,
        now: datetime,
        not_after: datetime,
        max_reminders: int,
    ) -> Optional[SignatureRequest]:
        """
        Count a reminder when fewer than max_reminders were sent and the last
        one is older than not_after.
        """

    # Signers

    @abstractmethod
    def insert_signers(self, signers: Sequence[Signer]) -> List[Signer]:
        ...

    @abstractmethod
    def get_signer(self, signer_id: str) -> Optional[Signer]:
        ...

    @abstractmethod
    def get_signers(self, request_id: str) -> List[Signer]:
        """Signers of a request in ascending signing order"""

    @abstractmethod
    def find_signer_request_ids(self, user_id: Optional[str], email: Optional[str]) -> List[str]:
        """Requests where the caller holds a signer row, by user id or email"""

    @abstractmethod
    def transition_signer(
        self,
        signer_id: str,
        to_status: SignerStatus,
        from_statuses: Sequence[SignerStatus],
        updates: Optional[Dict[str, Any]] = None,
    ) -> Optional[Signer]:
        ...

    @abstractmethod
    def transition_open_signers(
        self,
        request_id: str,
        to_status: SignerStatus,
        now: datetime,
    ) -> int:
        """Move every non-terminal signer of a request; returns how many moved"""

    @abstractmethod
    def mark_signers_reminded(self, signer_ids: Sequence[str], now: datetime) -> int:
        ...
