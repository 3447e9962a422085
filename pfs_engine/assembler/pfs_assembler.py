"""
PFS Assembler

Fetches every entity collection for a subject, syncs derived fields,
computes the summaries and bundles the result into one FullPFS.

GUARANTEES:
- Fetches run concurrently; the assembler waits for all of them
- A single failing fetch fails the whole assembly (no partial PFS) and
  cancels the fetches still in flight
- The returned summaries are computed from exactly the collections
  carried in the same FullPFS
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

import structlog

from pfs_engine.audit import AuditLogger
from pfs_engine.calculations import calculate_pfs_summaries
from pfs_engine.models.base import utcnow
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
from pfs_engine.models.pfs import FullPFS, PFSSummaries
from pfs_engine.services.storage import EntityKind, RepositoryRegistry
from pfs_engine.sync import EntityBundle, sync_all_entities
from pfs_engine.versioning import filter_active_entities


logger = structlog.get_logger()


class PFSAssemblyError(Exception):
    """One of the collection fetches failed; no PFS was produced."""

    def __init__(self, collection: str, cause: BaseException):
        self.collection = collection
        self.cause = cause
        super().__init__(f"Failed to fetch {collection}: {cause}")


class PFSDataFetchers(ABC):
    """
    Async source of every collection a PFS is built from.

    Each getter is keyed by subject id and returns that subject's active
    entities.
    """

    @abstractmethod
    async def get_personal_info(self, subject_id: str) -> Optional[PersonalInfo]:
        pass

    @abstractmethod
    async def get_real_estate(self, subject_id: str) -> list[RealEstateProperty]:
        pass

    @abstractmethod
    async def get_bank_accounts(self, subject_id: str) -> list[BankAccount]:
        pass

    @abstractmethod
    async def get_investments(self, subject_id: str) -> list[InvestmentAccount]:
        pass

    @abstractmethod
    async def get_rsu_restricted_stock(self, subject_id: str) -> list[RSURestrictedStock]:
        pass

    @abstractmethod
    async def get_private_equity(self, subject_id: str) -> list[PrivateEquity]:
        pass

    @abstractmethod
    async def get_cap_tables(self, subject_id: str) -> list[CapTable]:
        pass

    @abstractmethod
    async def get_business_entities(self, subject_id: str) -> list[BusinessEntity]:
        pass

    @abstractmethod
    async def get_personal_loans(self, subject_id: str) -> list[PersonalLoan]:
        pass

    @abstractmethod
    async def get_credit_lines(self, subject_id: str) -> list[CreditLine]:
        pass

    @abstractmethod
    async def get_credit_cards(self, subject_id: str) -> list[CreditCard]:
        pass

    @abstractmethod
    async def get_income_sources(self, subject_id: str) -> list[IncomeSource]:
        pass


class RepositoryFetchers(PFSDataFetchers):
    """PFSDataFetchers backed by a repository registry."""

    def __init__(self, registry: RepositoryRegistry):
        self._registry = registry

    async def _fetch(self, kind: EntityKind, subject_id: str) -> list:
        return await self._registry.get(kind).fetch_all(subject_id)

    async def get_personal_info(self, subject_id: str) -> Optional[PersonalInfo]:
        records = await self._fetch(EntityKind.PERSONAL_INFO, subject_id)
        return records[0] if records else None

    async def get_real_estate(self, subject_id: str) -> list[RealEstateProperty]:
        return await self._fetch(EntityKind.REAL_ESTATE, subject_id)

    async def get_bank_accounts(self, subject_id: str) -> list[BankAccount]:
        return await self._fetch(EntityKind.BANK_ACCOUNTS, subject_id)

    async def get_investments(self, subject_id: str) -> list[InvestmentAccount]:
        return await self._fetch(EntityKind.INVESTMENTS, subject_id)

    async def get_rsu_restricted_stock(self, subject_id: str) -> list[RSURestrictedStock]:
        return await self._fetch(EntityKind.RSU_RESTRICTED_STOCK, subject_id)

    async def get_private_equity(self, subject_id: str) -> list[PrivateEquity]:
        return await self._fetch(EntityKind.PRIVATE_EQUITY, subject_id)

    async def get_cap_tables(self, subject_id: str) -> list[CapTable]:
        return await self._fetch(EntityKind.CAP_TABLES, subject_id)

    async def get_business_entities(self, subject_id: str) -> list[BusinessEntity]:
        return await self._fetch(EntityKind.BUSINESS_ENTITIES, subject_id)

    async def get_personal_loans(self, subject_id: str) -> list[PersonalLoan]:
        return await self._fetch(EntityKind.PERSONAL_LOANS, subject_id)

    async def get_credit_lines(self, subject_id: str) -> list[CreditLine]:
        return await self._fetch(EntityKind.CREDIT_LINES, subject_id)

    async def get_credit_cards(self, subject_id: str) -> list[CreditCard]:
        return await self._fetch(EntityKind.CREDIT_CARDS, subject_id)

    async def get_income_sources(self, subject_id: str) -> list[IncomeSource]:
        return await self._fetch(EntityKind.INCOME_SOURCES, subject_id)


def make_pfs_id(subject_id: str, generated_at: datetime) -> str:
    return f"pfs-{subject_id}-{int(generated_at.timestamp() * 1000)}"


def _fetch_plan(fetchers: PFSDataFetchers, subject_id: str) -> dict[str, Any]:
    return {
        "personal_info": fetchers.get_personal_info(subject_id),
        "real_estate": fetchers.get_real_estate(subject_id),
        "bank_accounts": fetchers.get_bank_accounts(subject_id),
        "investments": fetchers.get_investments(subject_id),
        "rsu_restricted_stock": fetchers.get_rsu_restricted_stock(subject_id),
        "private_equity": fetchers.get_private_equity(subject_id),
        "cap_tables": fetchers.get_cap_tables(subject_id),
        "business_entities": fetchers.get_business_entities(subject_id),
        "personal_loans": fetchers.get_personal_loans(subject_id),
        "credit_lines": fetchers.get_credit_lines(subject_id),
        "credit_cards": fetchers.get_credit_cards(subject_id),
        "income_sources": fetchers.get_income_sources(subject_id),
    }


async def _fetch_all(fetchers: PFSDataFetchers, subject_id: str) -> dict[str, Any]:
    """
    Run every fetch concurrently.

    Returns results keyed by collection name. On the first failure the
    remaining fetches are cancelled and PFSAssemblyError is raised. If
    the caller is cancelled while waiting, every fetch is cancelled too.
    """
    tasks = {
        name: asyncio.create_task(coro)
        for name, coro in _fetch_plan(fetchers, subject_id).items()
    }
    try:
        await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
    except BaseException:
        await _cancel_pending(tasks.values())
        raise

    failed = next(
        (
            (name, task) for name, task in tasks.items()
            if task.done() and not task.cancelled() and task.exception() is not None
        ),
        None,
    )
    if failed is not None:
        await _cancel_pending(tasks.values())

        name, task = failed
        raise PFSAssemblyError(name, task.exception()) from task.exception()

    return {name: task.result() for name, task in tasks.items()}


async def _cancel_pending(tasks: Iterable[asyncio.Task]) -> None:
    pending = [task for task in tasks if not task.done()]
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


def assemble_pfs_from_data(
    subject_id: str,
    collections: Union[EntityBundle, Mapping[str, Any], None] = None,
    personal_info: Optional[PersonalInfo] = None,
    generated_at: Optional[datetime] = None,
) -> FullPFS:
    """
    Build a FullPFS from already-fetched collections.

    Soft-deleted entities are dropped, the rest are synced, and the
    summaries are computed from the synced collections. Collections not
    supplied are treated as empty.
    """
    if collections is None:
        bundle = EntityBundle()
    elif isinstance(collections, EntityBundle):
        bundle = collections
    else:
        bundle = EntityBundle.model_validate(collections)

    active = {
        name: filter_active_entities(getattr(bundle, name))
        for name in bundle.supplied()
    }
    synced = sync_all_entities(EntityBundle(**active))
    data = {
        name: getattr(synced, name) or []
        for name in EntityBundle.model_fields
    }

    summaries = calculate_pfs_summaries(
        real_estate=data["real_estate"],
        bank_accounts=data["bank_accounts"],
        investments=data["investments"],
        rsus=data["rsu_restricted_stock"],
        private_equity=data["private_equity"],
        cap_tables=data["cap_tables"],
        business_entities=data["business_entities"],
        personal_loans=data["personal_loans"],
        credit_lines=data["credit_lines"],
        credit_cards=data["credit_cards"],
        income_sources=data["income_sources"],
    )

    generated_at = generated_at or utcnow()
    return FullPFS(
        id=make_pfs_id(subject_id, generated_at),
        subject_id=subject_id,
        generated_at=generated_at,
        personal_info=personal_info,
        summaries=summaries,
        **data,
    )


async def assemble_pfs(
    subject_id: str,
    fetchers: PFSDataFetchers,
    audit_logger: Optional[AuditLogger] = None,
) -> FullPFS:
    """
    Fetch, sync and summarize every collection for a subject.

    Raises:
        PFSAssemblyError: If any collection fetch fails
    """
    try:
        fetched = await _fetch_all(fetchers, subject_id)
    except PFSAssemblyError as e:
        logger.error(
            "pfs_assembly_failed",
            subject_id=subject_id,
            collection=e.collection,
            error=str(e.cause),
        )
        if audit_logger:
            await audit_logger.log_assembly_failed(
                subject_id=subject_id,
                collection=e.collection,
                error_message=str(e.cause),
            )
        raise

    personal_info = fetched.pop("personal_info")
    pfs = assemble_pfs_from_data(subject_id, fetched, personal_info=personal_info)

    logger.info(
        "pfs_assembled",
        pfs_id=pfs.id,
        subject_id=subject_id,
        net_worth=str(pfs.summaries.net_worth),
    )
    if audit_logger:
        await audit_logger.log_pfs_assembled(pfs)

    return pfs


async def assemble_pfs_summary(
    subject_id: str,
    fetchers: PFSDataFetchers,
) -> PFSSummaries:
    """Summaries only, from a fresh assembly."""
    pfs = await assemble_pfs(subject_id, fetchers)
    return pfs.summaries
