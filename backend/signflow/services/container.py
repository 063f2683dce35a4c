"""Service Container - Wires repositories, engine and services once per process"""
from dataclasses import dataclass
from typing import Optional

from pymongo.database import Database

from ..config.settings import Settings
from ..engine.audit_writer import AuditWriter
from ..engine.permission_guard import PermissionGuard
from ..engine.signing_coordinator import SigningCoordinator
from ..repositories.audit_repo import AuditRepository
from ..repositories.field_repo import FieldConfigurationRepository
from ..repositories.notification_repo import NotificationRepository
from ..repositories.rate_limit_repo import RateLimitRepository
from ..repositories.signature_repo import SignatureRepository
from ..utils.time import Clock
from .bulk_service import BulkOperationsService
from .expiration_service import ExpirationService
from .field_service import FieldService
from .notification_service import NotificationPort, OutboxNotifier
from .rate_limiter import RateLimiter
from .request_service import SignatureRequestService
from .totp_service import MongoTotpSecretLookup, PyOtpVerifier, TotpVerifier


@dataclass
class ServiceContainer:
    """Everything the API and scheduler need, built from one database handle"""
    config: Settings
    db: Database
    clock: Clock
    store: SignatureRepository
    audit_writer: AuditWriter
    notifier: NotificationPort
    totp_verifier: TotpVerifier
    rate_limiter: RateLimiter
    signing: SigningCoordinator
    requests: SignatureRequestService
    expirations: ExpirationService
    bulk: BulkOperationsService
    fields: FieldService

    @classmethod
    def build(
        cls,
        db: Database,
        config: Settings,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationPort] = None,
        totp_verifier: Optional[TotpVerifier] = None
    ) -> "ServiceContainer":
        """
        Build the service graph.

        Args:
            db: Database handle (a mongomock database works for tests)
            config: Settings instance
            clock: Time source, defaults to the system clock
            notifier: Notification sink, defaults to the MongoDB outbox
            totp_verifier: TOTP check, defaults to pyotp with secrets from totp_configs
        """
        clock = clock or Clock()
        guard = PermissionGuard()
        store = SignatureRepository(db)
        field_repo = FieldConfigurationRepository(db)
        audit_writer = AuditWriter(AuditRepository(db), clock)
        notifier = notifier or OutboxNotifier(NotificationRepository(db), clock)
        totp_verifier = totp_verifier or PyOtpVerifier(
            MongoTotpSecretLookup(db), valid_window=config.totp_window
        )
        rate_limiter = RateLimiter(RateLimitRepository(db), config, clock)

        signing = SigningCoordinator(store, audit_writer, notifier, totp_verifier, clock, guard)
        requests = SignatureRequestService(
            store, audit_writer, notifier, rate_limiter, field_repo, config, clock, guard
        )
        expirations = ExpirationService(store, audit_writer, notifier, config, clock, guard)
        bulk = BulkOperationsService(store, requests, expirations, rate_limiter, config, clock, guard)

        return cls(
            config=config,
            db=db,
            clock=clock,
            store=store,
            audit_writer=audit_writer,
            notifier=notifier,
            totp_verifier=totp_verifier,
            rate_limiter=rate_limiter,
            signing=signing,
            requests=requests,
            expirations=expirations,
            bulk=bulk,
            fields=FieldService(field_repo, clock),
        )
