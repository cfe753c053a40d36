"""
数据库模型定义
使用SQLAlchemy 2.0+的声明式映射

每个表对应一个领域模型，通过 from_domain / to_domain 互相转换。
时间统一按UTC存储，读取时重新附加UTC时区。
"""

from datetime import date, datetime, timezone

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from nextskip.models.activations import Activation, ActivationType, Park, Summit
from nextskip.models.events import Contest, ContestSeries, MeteorShower
from nextskip.models.propagation import (
    BandCondition,
    BandConditionRating,
    FrequencyBand,
    SolarIndices,
)
from nextskip.models.spots import Spot


def to_utc(value: datetime | None) -> datetime | None:
    """统一转换为UTC（无时区的值视为UTC）"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _join(values: frozenset[str]) -> str:
    return ",".join(sorted(values))


def _split(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(v for v in value.split(",") if v)


class Base(AsyncAttrs, DeclarativeBase):
    """所有模型的基类"""

    pass


class ActivationDB(Base):
    """POTA/SOTA激活记录表"""

    __tablename__ = "activations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    spot_id: Mapped[str] = mapped_column(String(100), nullable=False)
    activator_callsign: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    frequency: Mapped[float | None] = mapped_column(Float, nullable=True)
    mode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    spotted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    qso_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # 位置信息（公园或山峰）
    location_reference: Mapped[str | None] = mapped_column(String(50), nullable=True)
    location_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    location_region_code: Mapped[str | None] = mapped_column(
        String(10), nullable=True
    )
    park_country_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    park_grid: Mapped[str | None] = mapped_column(String(10), nullable=True)
    park_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    park_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    summit_association_code: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("source", "spot_id", name="uq_activations_source_spot"),
        Index("idx_activations_spotted_at", "spotted_at"),
        Index("idx_activations_type_spotted", "type", "spotted_at"),
        Index("idx_activations_callsign", "activator_callsign"),
    )

    @classmethod
    def from_domain(cls, activation: Activation) -> "ActivationDB":
        row = cls(
            source=activation.source,
            spot_id=activation.spot_id,
            activator_callsign=activation.activator_callsign,
            type=activation.type.value,
            frequency=activation.frequency,
            mode=activation.mode,
            spotted_at=to_utc(activation.spotted_at),
            last_seen_at=to_utc(activation.last_seen_at),
            qso_count=activation.qso_count,
        )
        location = activation.location
        if location is not None:
            row.location_reference = location.reference
            row.location_name = location.name
            row.location_region_code = location.region_code
        if isinstance(location, Park):
            row.park_country_code = location.country_code
            row.park_grid = location.grid
            row.park_latitude = location.latitude
            row.park_longitude = location.longitude
        elif isinstance(location, Summit):
            row.summit_association_code = location.association_code
        return row

    def to_domain(self) -> Activation:
        activation_type = ActivationType(self.type)
        location: Park | Summit | None = None
        if self.location_reference is not None:
            if activation_type == ActivationType.POTA:
                location = Park(
                    reference=self.location_reference,
                    name=self.location_name or "",
                    region_code=self.location_region_code,
                    country_code=self.park_country_code,
                    grid=self.park_grid,
                    latitude=self.park_latitude,
                    longitude=self.park_longitude,
                )
            else:
                location = Summit(
                    reference=self.location_reference,
                    name=self.location_name or "",
                    region_code=self.location_region_code,
                    association_code=self.summit_association_code,
                )
        return Activation(
            spot_id=self.spot_id,
            activator_callsign=self.activator_callsign,
            type=activation_type,
            frequency=self.frequency,
            mode=self.mode,
            spotted_at=to_utc(self.spotted_at),
            last_seen_at=to_utc(self.last_seen_at),
            qso_count=self.qso_count,
            source=self.source,
            location=location,
        )

    def __repr__(self) -> str:
        return f"<Activation(source={self.source}, spot_id={self.spot_id})>"


class SolarIndicesDB(Base):
    """太阳指数表"""

    __tablename__ = "solar_indices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    solar_flux_index: Mapped[float | None] = mapped_column(Float, nullable=True)
    a_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    k_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sunspot_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("source", "timestamp", name="uq_solar_source_timestamp"),
        Index("idx_solar_source_timestamp", "source", "timestamp"),
    )

    @classmethod
    def from_domain(cls, indices: SolarIndices) -> "SolarIndicesDB":
        return cls(
            source=indices.source,
            timestamp=to_utc(indices.timestamp),
            solar_flux_index=indices.solar_flux_index,
            a_index=indices.a_index,
            k_index=indices.k_index,
            sunspot_number=indices.sunspot_number,
        )

    def to_domain(self) -> SolarIndices:
        return SolarIndices(
            solar_flux_index=self.solar_flux_index,
            a_index=self.a_index,
            k_index=self.k_index,
            sunspot_number=self.sunspot_number,
            timestamp=to_utc(self.timestamp),
            source=self.source,
        )


class BandConditionDB(Base):
    """波段传播条件表（每次刷新每个波段一行）"""

    __tablename__ = "band_conditions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    band: Mapped[str] = mapped_column(String(10), nullable=False)
    rating: Mapped[str] = mapped_column(String(10), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_band_conditions_band_recorded", "band", "recorded_at"),
        Index("idx_band_conditions_recorded", "recorded_at"),
    )

    @classmethod
    def from_domain(
        cls, condition: BandCondition, recorded_at: datetime, source: str
    ) -> "BandConditionDB":
        return cls(
            source=source,
            band=condition.band.value,
            rating=condition.rating.value,
            confidence=condition.confidence,
            notes=condition.notes,
            recorded_at=to_utc(recorded_at),
        )

    def to_domain(self) -> BandCondition:
        return BandCondition(
            band=FrequencyBand.from_string(self.band),
            rating=BandConditionRating.from_string(self.rating),
            confidence=self.confidence,
            notes=self.notes,
        )


class ContestDB(Base):
    """比赛日历表"""

    __tablename__ = "contests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    external_id: Mapped[str] = mapped_column(String(300), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bands: Mapped[str] = mapped_column(String(200), default="")
    modes: Mapped[str] = mapped_column(String(200), default="")
    sponsor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    calendar_source_url: Mapped[str | None] = mapped_column(
        String(1000), nullable=True
    )
    official_rules_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_contests_source_external"),
        Index("idx_contests_start", "start_time"),
        Index("idx_contests_end", "end_time"),
    )

    @classmethod
    def from_domain(cls, contest: Contest, source: str, external_id: str) -> "ContestDB":
        return cls(
            source=source,
            external_id=external_id,
            name=contest.name,
            start_time=to_utc(contest.start_time),
            end_time=to_utc(contest.end_time),
            bands=_join(contest.bands),
            modes=_join(contest.modes),
            sponsor=contest.sponsor,
            calendar_source_url=contest.calendar_source_url,
            official_rules_url=contest.official_rules_url,
        )

    def to_domain(self) -> Contest:
        return Contest(
            name=self.name,
            start_time=to_utc(self.start_time),
            end_time=to_utc(self.end_time),
            bands=_split(self.bands),
            modes=_split(self.modes),
            sponsor=self.sponsor,
            calendar_source_url=self.calendar_source_url,
            official_rules_url=self.official_rules_url,
        )


class ContestSeriesDB(Base):
    """比赛系列表（WA7BNM详情页），按 ref 唯一"""

    __tablename__ = "contest_series"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    ref: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bands: Mapped[str] = mapped_column(String(200), default="")
    modes: Mapped[str] = mapped_column(String(200), default="")
    sponsor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    official_rules_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    exchange: Mapped[str | None] = mapped_column(String(200), nullable=True)
    cabrillo_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    revision_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    @classmethod
    def from_domain(
        cls, series: ContestSeries, source: str, scraped_at: datetime
    ) -> "ContestSeriesDB":
        return cls(
            source=source,
            ref=series.ref,
            name=series.name,
            bands=_join(series.bands),
            modes=_join(series.modes),
            sponsor=series.sponsor,
            official_rules_url=series.official_rules_url,
            exchange=series.exchange,
            cabrillo_name=series.cabrillo_name,
            revision_date=series.revision_date,
            last_scraped_at=to_utc(scraped_at),
        )

    def to_domain(self) -> ContestSeries:
        return ContestSeries(
            ref=self.ref,
            name=self.name,
            bands=_split(self.bands),
            modes=_split(self.modes),
            sponsor=self.sponsor,
            official_rules_url=self.official_rules_url,
            exchange=self.exchange,
            cabrillo_name=self.cabrillo_name,
            revision_date=self.revision_date,
        )

    def contest_fields(self) -> dict[str, str | None]:
        """复制到同一 ref 下每场比赛的字段"""
        return {
            "bands": self.bands,
            "modes": self.modes,
            "sponsor": self.sponsor,
            "official_rules_url": self.official_rules_url,
        }


class MeteorShowerDB(Base):
    """流星雨表"""

    __tablename__ = "meteor_showers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    peak_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    peak_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    visibility_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    visibility_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    peak_zhr: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_body: Mapped[str | None] = mapped_column(String(100), nullable=True)
    info_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_meteors_source_external"),
        Index("idx_meteors_visibility", "visibility_start", "visibility_end"),
    )

    @classmethod
    def from_domain(
        cls, shower: MeteorShower, source: str, external_id: str
    ) -> "MeteorShowerDB":
        return cls(
            source=source,
            external_id=external_id,
            name=shower.name,
            code=shower.code,
            peak_start=to_utc(shower.peak_start),
            peak_end=to_utc(shower.peak_end),
            visibility_start=to_utc(shower.visibility_start),
            visibility_end=to_utc(shower.visibility_end),
            peak_zhr=shower.peak_zhr,
            parent_body=shower.parent_body,
            info_url=shower.info_url,
        )

    def to_domain(self) -> MeteorShower:
        return MeteorShower(
            name=self.name,
            code=self.code,
            peak_start=to_utc(self.peak_start),
            peak_end=to_utc(self.peak_end),
            visibility_start=to_utc(self.visibility_start),
            visibility_end=to_utc(self.visibility_end),
            peak_zhr=self.peak_zhr,
            parent_body=self.parent_body,
            info_url=self.info_url,
        )


class SpotDB(Base):
    """实时报告（spot）表，按 created_at 定期清理"""

    __tablename__ = "spots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    band: Mapped[str] = mapped_column(String(10), nullable=False)
    mode: Mapped[str] = mapped_column(String(10), nullable=False)
    frequency_hz: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    snr: Mapped[int | None] = mapped_column(Integer, nullable=True)
    spotted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    spotter_call: Mapped[str | None] = mapped_column(String(30), nullable=True)
    spotter_grid: Mapped[str | None] = mapped_column(String(6), nullable=True)
    spotter_continent: Mapped[str | None] = mapped_column(String(2), nullable=True)
    spotted_call: Mapped[str | None] = mapped_column(String(30), nullable=True)
    spotted_grid: Mapped[str | None] = mapped_column(String(6), nullable=True)
    spotted_continent: Mapped[str | None] = mapped_column(String(2), nullable=True)
    distance_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_spots_band_time", "band", "spotted_at"),
        Index("idx_spots_mode_time", "mode", "spotted_at"),
        Index("idx_spots_created_at", "created_at"),
    )

    @classmethod
    def from_domain(cls, spot: Spot, created_at: datetime | None = None) -> "SpotDB":
        return cls(
            source=spot.source,
            band=spot.band,
            mode=spot.mode,
            frequency_hz=spot.frequency_hz,
            snr=spot.snr,
            spotted_at=to_utc(spot.spotted_at),
            spotter_call=spot.spotter_call,
            spotter_grid=spot.spotter_grid,
            spotter_continent=spot.spotter_continent,
            spotted_call=spot.spotted_call,
            spotted_grid=spot.spotted_grid,
            spotted_continent=spot.spotted_continent,
            distance_km=spot.distance_km,
            created_at=to_utc(created_at) or _utcnow(),
        )

    def to_domain(self) -> Spot:
        return Spot(
            source=self.source,
            band=self.band,
            mode=self.mode,
            frequency_hz=self.frequency_hz,
            snr=self.snr,
            spotted_at=to_utc(self.spotted_at),
            spotter_call=self.spotter_call,
            spotter_grid=self.spotter_grid,
            spotter_continent=self.spotter_continent,
            spotted_call=self.spotted_call,
            spotted_grid=self.spotted_grid,
            spotted_continent=self.spotted_continent,
            distance_km=self.distance_km,
        )
