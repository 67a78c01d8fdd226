"""
Marketplace wiring.

Builds every service over one storage backend, identity directory and
outbox dispatcher so callers (the HTTP layer, the CLI, tests) share the
same transaction scope and clock.
"""

import logging
from typing import Callable, Optional

from carefayre.bids.service import BidService
from carefayre.config import MarketplaceConfig
from carefayre.contracts.service import ContractService
from carefayre.identity import IdentityDirectory, InMemoryIdentityDirectory
from carefayre.jobs.service import JobService
from carefayre.notifications import Dispatcher, NotificationService
from carefayre.profiles import ProfileService
from carefayre.settings import SettingsService
from carefayre.storage.memory import InMemoryMarketplaceStorage
from carefayre.storage.sqlite import SQLiteMarketplaceStorage
from carefayre.timesheets.expiry import QueryExpiryPolicy
from carefayre.timesheets.service import TimesheetService
from carefayre.utils import utc_now

logger = logging.getLogger(__name__)


class Marketplace:
    """All marketplace services over a shared storage backend."""

    def __init__(
        self,
        storage,
        identity: IdentityDirectory,
        config: Optional[MarketplaceConfig] = None,
        email=None,
        registry=None,
        clock: Optional[Callable] = None,
        expiry_policy: Optional[QueryExpiryPolicy] = None,
    ):
        self.storage = storage
        self.identity = identity
        self.config = config or MarketplaceConfig()
        self.clock = clock or utc_now

        self.settings = SettingsService(storage, identity, clock=self.clock)
        self.profiles = ProfileService(storage, identity, self.settings, registry=registry, clock=self.clock)
        self.notifications = NotificationService(storage, clock=self.clock)
        self.dispatcher = Dispatcher(self.notifications, email=email)
        self.jobs = JobService(storage, identity, self.dispatcher, config=self.config, clock=self.clock)
        self.contracts = ContractService(storage, self.jobs, self.dispatcher, clock=self.clock)
        self.bids = BidService(
            storage,
            identity,
            self.settings,
            self.jobs,
            self.dispatcher,
            config=self.config,
            clock=self.clock,
        )
        self.timesheets = TimesheetService(
            storage,
            identity,
            self.jobs,
            self.dispatcher,
            config=self.config,
            clock=self.clock,
            expiry_policy=expiry_policy,
        )

    @classmethod
    def in_memory(cls, identity: Optional[IdentityDirectory] = None, **kwargs) -> "Marketplace":
        """Marketplace over in-memory storage, for tests and local development."""
        return cls(InMemoryMarketplaceStorage(), identity or InMemoryIdentityDirectory(), **kwargs)

    @classmethod
    def sqlite(cls, db_path=None, identity: Optional[IdentityDirectory] = None, **kwargs) -> "Marketplace":
        storage = SQLiteMarketplaceStorage(db_path)
        logger.debug(f"Using SQLite storage at {storage.db_path}")
        return cls(storage, identity or InMemoryIdentityDirectory(), **kwargs)
