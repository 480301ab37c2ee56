"""Leased ArNS name sync: registry pages -> resolver enrichment -> upsert."""

import asyncio
from dataclasses import dataclass
from typing import Any

from permagate.common.logging import arns_name_ctx, logger
from permagate.common.metrics import arns_names_synced_total
from permagate.common.store import LeasedNameRecord, Store
from permagate.services.arns.registry import RegistryClient, RegistryError, ResolverClient


@dataclass
class SyncResult:
    synced: int = 0
    errors: int = 0
    skipped: int = 0
    unenriched: int = 0
    pages: int = 0


def is_leased(record: dict[str, Any]) -> bool:
    """Permabuys never expire and are not tracked."""

    return record.get("type") != "permabuy" and record.get("endTimestamp") is not None


class ArnsSyncService:
    """Reconciles the local `arns_names` table with the registry."""

    def __init__(
        self,
        store: Store,
        registry: RegistryClient,
        resolver: ResolverClient,
        page_size: int = 1000,
        concurrency: int = 10,
        service_name: str = "arns",
    ) -> None:
        self.store = store
        self.registry = registry
        self.resolver = resolver
        self.page_size = page_size
        self.concurrency = concurrency
        self.service_name = service_name

    async def sync_all_arns_names(self) -> SyncResult:
        """Walk every registry page sorted by name.

        Per-name failures are counted and logged; registry failures raise.
        """

        logger.info("arns_sync_started page_size=%s", self.page_size)
        result = SyncResult()
        semaphore = asyncio.Semaphore(self.concurrency)
        seen_cursors: set[str] = set()
        cursor: str | None = None
        try:
            while True:
                page = await self.registry.get_leased_records(
                    cursor=cursor,
                    limit=self.page_size,
                    sort_by="name",
                    sort_order="asc",
                )
                result.pages += 1
                leased = [(name, record) for name, record in page.items.items() if is_leased(record)]
                result.skipped += len(page.items) - len(leased)
                outcomes = await asyncio.gather(
                    *(self._sync_one(name, record, semaphore) for name, record in leased)
                )
                for status, enriched in outcomes:
                    if status == "synced":
                        result.synced += 1
                        if not enriched:
                            result.unenriched += 1
                    else:
                        result.errors += 1
                logger.debug(
                    "arns_sync_page page=%s count=%s has_more=%s total_synced=%s",
                    result.pages,
                    len(page.items),
                    page.has_more,
                    result.synced,
                )

                cursor = page.next_cursor
                if not cursor:
                    break
                if cursor in seen_cursors:
                    raise RegistryError(f"registry repeated cursor={cursor}")
                seen_cursors.add(cursor)
        except Exception:
            logger.exception("arns_sync_failed pages=%s synced=%s", result.pages, result.synced)
            raise

        logger.info(
            "arns_sync_completed synced=%s errors=%s skipped=%s unenriched=%s pages=%s",
            result.synced,
            result.errors,
            result.skipped,
            result.unenriched,
            result.pages,
        )
        return result

    async def _sync_one(
        self,
        name: str,
        record: dict[str, Any],
        semaphore: asyncio.Semaphore,
    ) -> tuple[str, bool]:
        """Returns (`synced` | `error`, whether resolver enrichment succeeded)."""

        async with semaphore:
            token = arns_name_ctx.set(name)
            try:
                enrichment = await self.resolver.resolve(name)
                self.store.upsert_leased_name(
                    LeasedNameRecord(
                        name=name,
                        process_id=str(record.get("processId") or ""),
                        start_timestamp=int(record["startTimestamp"]),
                        end_timestamp=int(record["endTimestamp"]),
                        owner=enrichment.owner if enrichment else None,
                        root_tx_id=enrichment.tx_id if enrichment else None,
                    )
                )
            except Exception as exc:
                logger.error("arns_sync_item_failed name=%s error=%s", name, exc)
                arns_names_synced_total.labels(service=self.service_name, result="error").inc()
                return "error", False
            finally:
                arns_name_ctx.reset(token)
        arns_names_synced_total.labels(service=self.service_name, result="synced").inc()
        return "synced", enrichment is not None
