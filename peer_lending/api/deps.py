"""
Lending system wiring and the FastAPI dependency that provides it
"""

from typing import Optional

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..calendar_utils import Clock, utc_now
from ..cycles import CycleScheduler
from ..principal import PrincipalLedger
from ..collection import CollectionEngine
from ..borrowers import BorrowerManager
from ..loans import LoanManager
from ..reporting import ReportingEngine
from ..config import PeerLendingConfig, get_config


class LendingSystem:
    """Lending core with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 clock: Clock = utc_now,
                 config: Optional[PeerLendingConfig] = None):
        config = config or get_config()

        # Initialize storage
        self.storage = storage if storage is not None else create_storage(config.database_url)
        self.clock = clock

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, clock=clock)
        self.scheduler = CycleScheduler(self.storage, self.audit_trail, clock)
        self.ledger = PrincipalLedger(self.storage, self.scheduler, self.audit_trail, clock)
        self.collection_engine = CollectionEngine(self.storage, self.scheduler, self.audit_trail, clock)
        self.borrower_manager = BorrowerManager(self.storage, self.audit_trail, clock)
        self.loan_manager = LoanManager(
            self.storage, self.borrower_manager, self.scheduler, self.ledger,
            self.audit_trail, clock, history_limit=config.history_limit
        )
        self.reporting_engine = ReportingEngine(
            self.storage, self.ledger, clock,
            top_borrowers_limit=config.top_borrowers_limit
        )

    def close(self) -> None:
        self.storage.close()


# Global lending system instance, created on first use
_lending_system: Optional[LendingSystem] = None


# Dependency to get lending system
def get_lending_system() -> LendingSystem:
    global _lending_system
    if _lending_system is None:
        _lending_system = LendingSystem()
    return _lending_system
