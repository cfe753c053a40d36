"""
POTA and SOTA activation refresh.
"""

from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from nextskip.datastore.models import ActivationDB
from nextskip.datastore.repositories import ActivationRepository
from nextskip.models.activations import Activation
from nextskip.refresh.base import RefreshResult, RefreshService


class ActivationRefreshService(RefreshService[list[Activation]]):
    """
    Upserts activations by (source, spot_id) and removes this source's
    activations spotted more than two hours ago.
    """

    RETENTION = timedelta(hours=2)
    INITIAL_LOAD_WINDOW = timedelta(minutes=5)

    def __init__(self, label: str, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._label = label

    @property
    def service_name(self) -> str:
        return self._label

    @property
    def source_name(self) -> str:
        return self.fetch_client.source_name

    async def persist(
        self, session: AsyncSession, batch: list[Activation]
    ) -> RefreshResult:
        repo = ActivationRepository(session)
        saved = await repo.upsert([ActivationDB.from_domain(a) for a in batch])
        deleted = await repo.delete_by_source_older_than(
            self.source_name, self.now() - self.RETENTION
        )
        return RefreshResult(saved=len(saved), deleted=deleted)

    def success_message(self, result: RefreshResult) -> str:
        return (
            f"{self.service_name} refresh complete: {result.saved} activations saved, "
            f"{result.deleted} old records deleted"
        )

    async def needs_initial_load(self) -> bool:
        since = self.now() - self.INITIAL_LOAD_WINDOW
        has_recent = await self._read(
            lambda session: ActivationRepository(session).exists_for_source_since(
                self.source_name, since
            )
        )
        return not has_recent
