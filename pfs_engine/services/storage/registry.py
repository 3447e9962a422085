"""
Repository Registry

Maps every entity kind to its repository and builds the storage
components for the configured backend.

CRITICAL: an unconfigured backend is a ConfigurationError raised to the
caller immediately. There is no silent fallback to another backend.
"""

from enum import Enum
from typing import Mapping, NamedTuple, Optional

from pydantic import ValidationError

from pfs_engine.config import AppSettings, GoogleSheetsSettings, get_settings
from pfs_engine.models.base import PFSEntity
from pfs_engine.models.entities import (
    BankAccount,
    BusinessEntity,
    CapTable,
    CreditCard,
    CreditLine,
    IncomeSource,
    InvestmentAccount,
    PersonalInfo,
    PersonalLoan,
    PrivateEquity,
    RealEstateProperty,
    RSURestrictedStock,
)
from pfs_engine.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntityRepository,
    GoogleSheetsSnapshotStorage,
)
from pfs_engine.services.storage.interface import (
    AuditStorageInterface,
    ConfigurationError,
    EntityRepository,
    SnapshotStorageInterface,
)
from pfs_engine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryEntityRepository,
    InMemorySnapshotStorage,
)
from pfs_engine.services.storage.versioned import Normalizer
from pfs_engine.sync import sync_entity


class EntityKind(str, Enum):
    """
    Every entity table the engine knows about.

    Values are the camelCase collection names used in the FullPFS JSON.
    """
    PERSONAL_INFO = "personalInfo"
    REAL_ESTATE = "realEstate"
    BANK_ACCOUNTS = "bankAccounts"
    INVESTMENTS = "investments"
    RSU_RESTRICTED_STOCK = "rsuRestrictedStock"
    PRIVATE_EQUITY = "privateEquity"
    CAP_TABLES = "capTables"
    BUSINESS_ENTITIES = "businessEntities"
    PERSONAL_LOANS = "personalLoans"
    CREDIT_LINES = "creditLines"
    CREDIT_CARDS = "creditCards"
    INCOME_SOURCES = "incomeSources"

    @property
    def model(self) -> type[PFSEntity]:
        return ENTITY_MODELS[self]

    @property
    def collection(self) -> str:
        """snake_case attribute name of this collection on FullPFS."""
        return COLLECTION_ATTRIBUTES[self]

    @classmethod
    def for_model(cls, model: type[PFSEntity]) -> "EntityKind":
        for kind, kind_model in ENTITY_MODELS.items():
            if kind_model is model:
                return kind
        raise KeyError(model.__name__)


ENTITY_MODELS: dict[EntityKind, type[PFSEntity]] = {
    EntityKind.PERSONAL_INFO: PersonalInfo,
    EntityKind.REAL_ESTATE: RealEstateProperty,
    EntityKind.BANK_ACCOUNTS: BankAccount,
    EntityKind.INVESTMENTS: InvestmentAccount,
    EntityKind.RSU_RESTRICTED_STOCK: RSURestrictedStock,
    EntityKind.PRIVATE_EQUITY: PrivateEquity,
    EntityKind.CAP_TABLES: CapTable,
    EntityKind.BUSINESS_ENTITIES: BusinessEntity,
    EntityKind.PERSONAL_LOANS: PersonalLoan,
    EntityKind.CREDIT_LINES: CreditLine,
    EntityKind.CREDIT_CARDS: CreditCard,
    EntityKind.INCOME_SOURCES: IncomeSource,
}

COLLECTION_ATTRIBUTES: dict[EntityKind, str] = {
    EntityKind.PERSONAL_INFO: "personal_info",
    EntityKind.REAL_ESTATE: "real_estate",
    EntityKind.BANK_ACCOUNTS: "bank_accounts",
    EntityKind.INVESTMENTS: "investments",
    EntityKind.RSU_RESTRICTED_STOCK: "rsu_restricted_stock",
    EntityKind.PRIVATE_EQUITY: "private_equity",
    EntityKind.CAP_TABLES: "cap_tables",
    EntityKind.BUSINESS_ENTITIES: "business_entities",
    EntityKind.PERSONAL_LOANS: "personal_loans",
    EntityKind.CREDIT_LINES: "credit_lines",
    EntityKind.CREDIT_CARDS: "credit_cards",
    EntityKind.INCOME_SOURCES: "income_sources",
}

# The eleven collections summed into a PFS (personal info is not one)
COLLECTION_KINDS: tuple[EntityKind, ...] = tuple(
    kind for kind in EntityKind if kind is not EntityKind.PERSONAL_INFO
)


class RepositoryRegistry:
    """One repository per entity kind."""

    def __init__(self, repositories: Mapping[EntityKind, EntityRepository]):
        missing = [kind.value for kind in EntityKind if kind not in repositories]
        if missing:
            raise ConfigurationError(
                f"No repository configured for: {', '.join(missing)}"
            )
        self._repositories = dict(repositories)

    def get(self, kind: EntityKind) -> EntityRepository:
        return self._repositories[EntityKind(kind)]

    def __getitem__(self, kind: EntityKind) -> EntityRepository:
        return self.get(kind)

    def for_entity(self, entity: PFSEntity) -> EntityRepository:
        return self.get(EntityKind.for_model(type(entity)))

    @classmethod
    def in_memory(cls, normalizer: Optional[Normalizer] = sync_entity) -> "RepositoryRegistry":
        return cls({
            kind: InMemoryEntityRepository(kind.model, normalizer)
            for kind in EntityKind
        })

    @classmethod
    def google_sheets(
        cls,
        client: GoogleSheetsClient,
        normalizer: Optional[Normalizer] = sync_entity,
    ) -> "RepositoryRegistry":
        return cls({
            kind: GoogleSheetsEntityRepository(kind.model, client, normalizer)
            for kind in EntityKind
        })


class StorageComponents(NamedTuple):
    repositories: RepositoryRegistry
    snapshots: SnapshotStorageInterface
    audit: AuditStorageInterface


def create_storage(
    app_settings: Optional[AppSettings] = None,
    sheets_settings: Optional[GoogleSheetsSettings] = None,
) -> StorageComponents:
    """
    Build repositories, snapshot storage and audit storage for the
    configured backend.

    Raises:
        ConfigurationError: If the selected backend is not configured
    """
    app_settings = app_settings or get_settings().app

    if app_settings.storage_backend == "memory":
        return StorageComponents(
            repositories=RepositoryRegistry.in_memory(),
            snapshots=InMemorySnapshotStorage(),
            audit=InMemoryAuditStorage(),
        )

    if app_settings.storage_backend == "google_sheets":
        if sheets_settings is None:
            try:
                sheets_settings = get_settings().google_sheets
            except ValidationError as e:
                raise ConfigurationError(
                    f"Google Sheets storage selected but not configured: {e}"
                ) from e

        client = GoogleSheetsClient(sheets_settings)
        return StorageComponents(
            repositories=RepositoryRegistry.google_sheets(client),
            snapshots=GoogleSheetsSnapshotStorage(client),
            audit=GoogleSheetsAuditStorage(client),
        )

    raise ConfigurationError(f"Unknown storage backend: {app_settings.storage_backend}")
