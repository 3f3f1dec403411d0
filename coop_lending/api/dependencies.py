"""
Application container and request dependencies
"""

from datetime import datetime
from typing import Callable, Optional

from fastapi import Header

from ..amortization import AmortizationCalculator
from ..audit import AuditTrail
from ..collections import CollectionsManager
from ..compliance import ComplianceAggregator
from ..config import LendingConfig, get_config
from ..events import EventDispatcher
from ..lifecycle import LoanStateMachine
from ..loans import LoanRepository
from ..logging_config import get_logger
from ..penalties import PenaltyEvaluator, PenaltySettingsStore
from ..rbac import DirectoryRolePolicy, Role, UserDirectory
from ..reporting import ReportingEngine
from ..risk_client import RiskNarrativeClient
from ..schedule import PaymentScheduleGenerator
from ..storage import InMemoryStorage, SQLiteStorage, StorageInterface


logger = get_logger("coop_lending.api")


class LendingSystem:
    """Lending core with all components wired together"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[LendingConfig] = None,
        risk_client: Optional[RiskNarrativeClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or get_config()

        if storage is None:
            if self.config.use_sqlite:
                storage = SQLiteStorage(
                    self.config.database_path,
                    retry_attempts=self.config.storage_retry_attempts,
                    retry_backoff=self.config.storage_retry_backoff_seconds,
                )
            else:
                storage = InMemoryStorage()
        self.storage = storage

        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.dispatcher = EventDispatcher()

        self.user_directory = UserDirectory(self.storage, self.audit_trail)
        self.role_policy = DirectoryRolePolicy(self.user_directory)

        self.repository = LoanRepository(self.storage)
        self.calculator = AmortizationCalculator()
        self.schedule_generator = PaymentScheduleGenerator(self.calculator)
        self.penalty_evaluator = PenaltyEvaluator()
        self.compliance_aggregator = ComplianceAggregator(self.penalty_evaluator)

        self.settings_store = PenaltySettingsStore(
            self.storage, self.role_policy, self.audit_trail, self.config
        )
        self.settings_store.set_event_dispatcher(self.dispatcher)

        self.state_machine = LoanStateMachine(
            self.repository,
            self.role_policy,
            calculator=self.calculator,
            schedule_generator=self.schedule_generator,
            audit=self.audit_trail,
            dispatcher=self.dispatcher,
            clock=clock,
        )
        self.collections_manager = CollectionsManager(
            self.repository,
            self.settings_store,
            evaluator=self.penalty_evaluator,
            aggregator=self.compliance_aggregator,
            clock=clock,
        )
        self.reporting_engine = ReportingEngine(self.repository)
        self.risk_client = risk_client or RiskNarrativeClient(
            base_url=self.config.risk_narrative_url,
            timeout=self.config.risk_narrative_timeout,
            api_key=self.config.risk_narrative_api_key or None,
        )

        self._bootstrap_admin()

    def _bootstrap_admin(self) -> None:
        admin_id = self.config.bootstrap_admin_id
        if admin_id and self.user_directory.get_user(admin_id) is None:
            self.user_directory.create_user(admin_id, admin_id, Role.ADMIN, created_by="system")
            logger.info(f"Provisioned bootstrap admin '{admin_id}'")


_lending_system: Optional[LendingSystem] = None


def get_lending_system() -> LendingSystem:
    """Dependency returning the process-wide lending system (created on first use)"""
    global _lending_system
    if _lending_system is None:
        _lending_system = LendingSystem()
    return _lending_system


def get_acting_user(x_acting_user: Optional[str] = Header(default=None)) -> Optional[str]:
    """
    Identity of the caller, supplied by the authenticating gateway in front
    of this service.
    """
    return x_acting_user.strip() if x_acting_user and x_acting_user.strip() else None
