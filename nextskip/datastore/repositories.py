"""
数据库Repository层 - 封装数据访问逻辑

所有删除操作都按来源（source）过滤，避免一个来源的清理删除另一个来源的数据。
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nextskip.datastore.models import (
    ActivationDB,
    BandConditionDB,
    Base,
    ContestDB,
    ContestSeriesDB,
    MeteorShowerDB,
    SolarIndicesDB,
    SpotDB,
    to_utc,
)

RowT = TypeVar("RowT", bound=Base)


async def upsert_by_key(
    session: AsyncSession, model: type[RowT], key_attr: str, rows: Sequence[RowT]
) -> list[RowT]:
    """
    按 (source, key_attr) 合并写入。

    对传入行做一次批量查询，命中的行把已有主键赋给新行，使 merge 变成 UPDATE，
    未命中的行则 INSERT。同一批次中重复的键只保留最后一个。
    """
    if not rows:
        return []

    key_column = getattr(model, key_attr)
    deduped: dict[tuple[str, Any], RowT] = {}
    for row in rows:
        deduped[(row.source, getattr(row, key_attr))] = row

    by_source: dict[str, list[Any]] = {}
    for source, key in deduped:
        by_source.setdefault(source, []).append(key)

    # 已有行加载进identity map，merge时不再逐行查询
    existing_ids: dict[tuple[str, Any], int] = {}
    for source, keys in by_source.items():
        result = await session.execute(
            select(model).where(model.source == source, key_column.in_(keys))
        )
        for existing in result.scalars().all():
            key = _normalize_key(getattr(existing, key_attr))
            existing_ids[(source, key)] = existing.id

    merged = []
    for (source, key), row in deduped.items():
        row_id = existing_ids.get((source, _normalize_key(key)))
        if row_id is not None:
            row.id = row_id
        merged.append(await session.merge(row))
    await session.flush()
    return merged


def _normalize_key(key: Any) -> Any:
    # SQLite 返回的时间不带时区
    if isinstance(key, datetime):
        return to_utc(key)
    return key


async def _delete(session: AsyncSession, stmt) -> int:
    result = await session.execute(stmt)
    return result.rowcount or 0


class ActivationRepository:
    """POTA/SOTA激活Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, rows: Sequence[ActivationDB]) -> list[ActivationDB]:
        return await upsert_by_key(self.session, ActivationDB, "spot_id", rows)

    async def find_by_source_and_spot_ids(
        self, source: str, spot_ids: Iterable[str]
    ) -> list[ActivationDB]:
        spot_ids = list(spot_ids)
        if not spot_ids:
            return []
        result = await self.session.execute(
            select(ActivationDB).where(
                ActivationDB.source == source, ActivationDB.spot_id.in_(spot_ids)
            )
        )
        return list(result.scalars().all())

    async def find_spotted_since(self, since: datetime) -> list[ActivationDB]:
        """查询某时间之后的激活，按时间倒序"""
        result = await self.session.execute(
            select(ActivationDB)
            .where(ActivationDB.spotted_at >= since)
            .order_by(ActivationDB.spotted_at.desc())
        )
        return list(result.scalars().all())

    async def delete_by_source_older_than(self, source: str, cutoff: datetime) -> int:
        return await _delete(
            self.session,
            delete(ActivationDB).where(
                ActivationDB.source == source, ActivationDB.spotted_at < cutoff
            ),
        )

    async def exists_for_source_since(self, source: str, since: datetime) -> bool:
        return await self.session.scalar(
            select(
                exists().where(
                    ActivationDB.source == source, ActivationDB.spotted_at > since
                )
            )
        )

    async def count_by_source(self, source: str) -> int:
        return await self.session.scalar(
            select(func.count(ActivationDB.id)).where(ActivationDB.source == source)
        )


class SolarIndicesRepository:
    """太阳指数Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, rows: Sequence[SolarIndicesDB]) -> list[SolarIndicesDB]:
        return await upsert_by_key(self.session, SolarIndicesDB, "timestamp", rows)

    async def find_latest_by_source(self, source: str) -> SolarIndicesDB | None:
        result = await self.session.execute(
            select(SolarIndicesDB)
            .where(SolarIndicesDB.source == source)
            .order_by(SolarIndicesDB.timestamp.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def delete_by_source_older_than(self, source: str, cutoff: datetime) -> int:
        return await _delete(
            self.session,
            delete(SolarIndicesDB).where(
                SolarIndicesDB.source == source, SolarIndicesDB.timestamp < cutoff
            ),
        )

    async def exists_for_source_since(self, source: str, since: datetime) -> bool:
        return await self.session.scalar(
            select(
                exists().where(
                    SolarIndicesDB.source == source, SolarIndicesDB.timestamp > since
                )
            )
        )

    async def count_by_source(self, source: str) -> int:
        return await self.session.scalar(
            select(func.count(SolarIndicesDB.id)).where(
                SolarIndicesDB.source == source
            )
        )


class BandConditionRepository:
    """波段条件Repository（每次刷新插入新行）"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_all(self, rows: Sequence[BandConditionDB]) -> None:
        self.session.add_all(rows)
        await self.session.flush()

    async def find_latest_per_band(self, since: datetime) -> list[BandConditionDB]:
        """每个波段在 since 之后的最新一条记录"""
        result = await self.session.execute(
            select(BandConditionDB)
            .where(BandConditionDB.recorded_at >= since)
            .order_by(BandConditionDB.recorded_at.desc(), BandConditionDB.id.desc())
        )
        latest: dict[str, BandConditionDB] = {}
        for row in result.scalars().all():
            latest.setdefault(row.band, row)
        return list(latest.values())

    async def delete_by_source_older_than(self, source: str, cutoff: datetime) -> int:
        return await _delete(
            self.session,
            delete(BandConditionDB).where(
                BandConditionDB.source == source, BandConditionDB.recorded_at < cutoff
            ),
        )

    async def exists_for_source_since(self, source: str, since: datetime) -> bool:
        return await self.session.scalar(
            select(
                exists().where(
                    BandConditionDB.source == source,
                    BandConditionDB.recorded_at > since,
                )
            )
        )


class ContestRepository:
    """比赛Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, rows: Sequence[ContestDB]) -> list[ContestDB]:
        return await upsert_by_key(self.session, ContestDB, "external_id", rows)

    async def find_ending_after(self, now: datetime) -> list[ContestDB]:
        """未结束的比赛，按开始时间排序"""
        result = await self.session.execute(
            select(ContestDB)
            .where(ContestDB.end_time > now)
            .order_by(ContestDB.start_time)
        )
        return list(result.scalars().all())

    async def delete_by_source_ended_before(self, source: str, cutoff: datetime) -> int:
        return await _delete(
            self.session,
            delete(ContestDB).where(
                ContestDB.source == source, ContestDB.end_time < cutoff
            ),
        )

    async def apply_series(self, series: ContestSeriesDB) -> int:
        """把系列元数据写入该 ref 下的所有比赛，返回更新行数"""
        result = await self.session.execute(
            update(ContestDB)
            .where(ContestDB.external_id == series.ref)
            .values(**series.contest_fields())
        )
        return result.rowcount or 0

    async def count_by_source(self, source: str) -> int:
        return await self.session.scalar(
            select(func.count(ContestDB.id)).where(ContestDB.source == source)
        )


class ContestSeriesRepository:
    """比赛系列Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, rows: Sequence[ContestSeriesDB]) -> list[ContestSeriesDB]:
        return await upsert_by_key(self.session, ContestSeriesDB, "ref", rows)

    async def find_by_refs(self, refs: Iterable[str]) -> dict[str, ContestSeriesDB]:
        refs = list(set(refs))
        if not refs:
            return {}
        result = await self.session.execute(
            select(ContestSeriesDB).where(ContestSeriesDB.ref.in_(refs))
        )
        return {row.ref: row for row in result.scalars().all()}

    async def count(self) -> int:
        return await self.session.scalar(select(func.count(ContestSeriesDB.id)))


class MeteorShowerRepository:
    """流星雨Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, rows: Sequence[MeteorShowerDB]) -> list[MeteorShowerDB]:
        return await upsert_by_key(self.session, MeteorShowerDB, "external_id", rows)

    async def find_visible_at(self, now: datetime) -> list[MeteorShowerDB]:
        """当前可见的流星雨，按峰值时间排序"""
        result = await self.session.execute(
            select(MeteorShowerDB)
            .where(
                MeteorShowerDB.visibility_start < now,
                MeteorShowerDB.visibility_end > now,
            )
            .order_by(MeteorShowerDB.peak_start)
        )
        return list(result.scalars().all())

    async def delete_by_source_ended_before(self, source: str, cutoff: datetime) -> int:
        return await _delete(
            self.session,
            delete(MeteorShowerDB).where(
                MeteorShowerDB.source == source,
                MeteorShowerDB.visibility_end < cutoff,
            ),
        )

    async def count_by_source(self, source: str) -> int:
        return await self.session.scalar(
            select(func.count(MeteorShowerDB.id)).where(
                MeteorShowerDB.source == source
            )
        )


class SpotRepository:
    """实时spot Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_all(self, rows: Sequence[SpotDB]) -> None:
        self.session.add_all(rows)
        await self.session.flush()

    async def find_by_band_since(self, band: str, since: datetime) -> list[SpotDB]:
        """某波段在 since 之后（不含）的spot"""
        result = await self.session.execute(
            select(SpotDB)
            .where(SpotDB.band == band, SpotDB.spotted_at > since)
            .order_by(SpotDB.spotted_at)
        )
        return list(result.scalars().all())

    async def find_bands_with_spots_since(self, since: datetime) -> list[str]:
        result = await self.session.execute(
            select(SpotDB.band).where(SpotDB.spotted_at >= since).distinct()
        )
        return sorted(result.scalars().all())

    async def count_created_since(self, since: datetime) -> int:
        return await self.session.scalar(
            select(func.count(SpotDB.id)).where(SpotDB.created_at > since)
        )

    async def delete_created_before(self, cutoff: datetime, batch_size: int = 1000) -> int:
        """分批删除过期spot，返回删除总数"""
        total = 0
        while True:
            ids = (
                await self.session.execute(
                    select(SpotDB.id).where(SpotDB.created_at < cutoff).limit(batch_size)
                )
            ).scalars().all()
            if not ids:
                break
            total += await _delete(self.session, delete(SpotDB).where(SpotDB.id.in_(ids)))
            if len(ids) < batch_size:
                break
        if total > 0:
            logger.debug(f"Deleted {total} spots created before {cutoff.isoformat()}")
        return total
