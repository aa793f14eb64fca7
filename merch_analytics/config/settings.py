"""
Merchandising Analytics Engine
Centralized Configuration Management

Pydantic settings with environment variable support. Every tunable of the
engine (ABC cut-offs, analysis window, association minimums, kit tiers,
safety-margin rule, stock multipliers) lives here, grouped by concern, with
named profiles for the rule sets that exist in more than one flavour.
"""

from enum import Enum
from functools import lru_cache
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ABCThresholds(BaseModel):
    """
    Cumulative-percentage cut-offs for ABC classification.

    An entity is class A while its cumulative share is <= ``class_a_boundary``,
    class B while <= ``class_b_boundary`` and class C otherwise.
    """

    class_a_boundary: float = Field(default=80.0, description="Upper cumulative % for class A")
    class_b_boundary: float = Field(default=95.0, description="Upper cumulative % for class B")

    @model_validator(mode="after")
    def check_partition(self) -> "ABCThresholds":
        if not 0 < self.class_a_boundary <= self.class_b_boundary <= 100:
            raise ValueError(
                "ABC boundaries must satisfy 0 < A <= B <= 100, "
                f"got A={self.class_a_boundary}, B={self.class_b_boundary}"
            )
        return self

    @classmethod
    def from_shares(cls, a: float, b: float, c: float) -> "ABCThresholds":
        """Build boundaries from per-class shares, e.g. {a: 20, b: 30, c: 50}"""
        if abs((a + b + c) - 100.0) > 1e-9:
            raise ValueError(f"ABC shares must add up to 100, got {a} + {b} + {c}")
        return cls(class_a_boundary=a, class_b_boundary=a + b)


ABC_PROFILES: Dict[str, ABCThresholds] = {
    "pareto": ABCThresholds(class_a_boundary=80.0, class_b_boundary=95.0),
    "spreadsheet": ABCThresholds.from_shares(20.0, 30.0, 50.0),
}


class StockMultipliers(BaseModel):
    """Months of cover per ABC class plus the demand-aware adjustments"""

    A: float = 3.5
    B: float = 2.5
    C: float = 1.8
    variability_adjustment: float = Field(default=0.5, description="Added when CV exceeds variability_cutoff")
    variability_cutoff: float = 0.5
    seasonality_adjustment: float = Field(default=0.3, description="Added when active months <= seasonality_max_active_months")
    seasonality_max_active_months: int = 6

    def for_class(self, class_label: str) -> float:
        return getattr(self, class_label)


STOCK_PROFILES: Dict[str, StockMultipliers] = {
    "demand_aware": StockMultipliers(),
    "coverage": StockMultipliers(
        A=2.0,
        B=6.0,
        C=6.0,
        variability_adjustment=0.0,
        seasonality_adjustment=0.0,
    ),
}


class WindowAnchor(str, Enum):
    """How the monthly analysis window is laid out"""
    CALENDAR = "calendar"  # 12 named months of a calendar year
    TRAILING = "trailing"  # N months ending at the anchor month


class MinMaxConvention(str, Enum):
    """Which periods feed min_sale / max_sale"""
    ALL_PERIODS = "all_periods"
    NONZERO_PERIODS = "nonzero_periods"


class FieldMapping(BaseModel):
    """Raw record field names understood by the normalizer"""

    customer: str = "customer"
    product: str = "product"
    city: str = "city"
    finish: str = "finish"
    order_id: str = "order_id"
    quantity: str = "quantity"
    unit_value: str = "unit_value"
    line_amount: str = "line_amount"
    date: str = "date"


class ABCSettings(BaseSettings):
    """ABC classification profiles"""

    model_config = SettingsConfigDict(env_prefix="MERCH_ABC_")

    entity_profile: str = Field(default="pareto", description="Profile for customers/products/cities/finishes")
    sku_profile: str = Field(default="pareto", description="Profile for per-SKU quantity classification")
    custom: Optional[ABCThresholds] = Field(default=None, description="Overrides both profiles when set")

    @field_validator("entity_profile", "sku_profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        if v not in ABC_PROFILES:
            raise ValueError(f"ABC profile must be one of: {sorted(ABC_PROFILES)}")
        return v

    @property
    def entity_thresholds(self) -> ABCThresholds:
        return self.custom or ABC_PROFILES[self.entity_profile]

    @property
    def sku_thresholds(self) -> ABCThresholds:
        return self.custom or ABC_PROFILES[self.sku_profile]


class WindowSettings(BaseSettings):
    """Monthly aggregation window"""

    model_config = SettingsConfigDict(env_prefix="MERCH_WINDOW_")

    anchor: WindowAnchor = Field(default=WindowAnchor.CALENDAR, description="calendar or trailing")
    months: int = Field(default=12, description="Window length for the trailing anchor")
    year: Optional[int] = Field(default=None, description="Calendar year; None folds all years by month")
    anchor_to_now: bool = Field(default=False, description="Trailing window ends at the current month")
    min_max_convention: MinMaxConvention = Field(default=MinMaxConvention.ALL_PERIODS)

    @field_validator("months")
    @classmethod
    def validate_months(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Analysis window must be at least one month")
        return v

    @property
    def size(self) -> int:
        return 12 if self.anchor == WindowAnchor.CALENDAR else self.months


class AssociationSettings(BaseSettings):
    """Correlation and basket association mining"""

    model_config = SettingsConfigDict(env_prefix="MERCH_")

    correlation_threshold: float = Field(default=0.6, description="Min |r| for per-SKU associations")
    min_support: float = Field(default=0.02, description="Basket rule minimum support")
    min_confidence: float = Field(default=0.25, description="Basket rule minimum confidence")
    min_lift: float = Field(default=1.2, description="Basket rule minimum lift")
    top_k: int = Field(default=5, description="Associations kept per source SKU")
    momentum_alpha: float = Field(default=0.15, description="Forecast sensitivity to momentum")

    @field_validator("correlation_threshold")
    @classmethod
    def validate_correlation(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("Correlation threshold must be within [0, 1]")
        return v

    @field_validator("min_support", "min_confidence")
    @classmethod
    def validate_probability(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("Support and confidence minimums must be within [0, 1]")
        return v


class StrengthTier(BaseModel):
    """Kit multipliers applied from ``min_strength`` upwards"""

    min_strength: float
    stock_bonus: float
    impact_multiplier: float


class KitSettings(BaseSettings):
    """Kit (product pair) recommendation"""

    model_config = SettingsConfigDict(env_prefix="MERCH_KIT_")

    min_strength: Union[float, Literal["auto"]] = Field(
        default="auto",
        description="Minimum pair strength; 'auto' uses the p<0.05 correlation cut-off for the window",
    )
    significance_level: float = Field(default=0.05, description="Alpha for the auto cut-off")
    pool_cap: int = Field(default=30, description="Max SKUs in the candidate pool")
    pool_fraction: float = Field(default=0.1, description="Pool size as a share of all SKUs")
    max_pair_evaluations: int = Field(default=500, description="Pair evaluation budget")
    base_stock_months: float = Field(default=2.5, description="Months of the stronger SKU's demand")
    top_k: int = Field(default=20, description="Kits kept after ranking")
    top_versatile: int = Field(default=15, description="Versatile products kept")
    tiers: List[StrengthTier] = Field(
        default=[
            StrengthTier(min_strength=0.8, stock_bonus=1.3, impact_multiplier=1.5),
            StrengthTier(min_strength=0.7, stock_bonus=1.2, impact_multiplier=1.3),
            StrengthTier(min_strength=0.0, stock_bonus=1.1, impact_multiplier=1.1),
        ],
    )

    @field_validator("pool_fraction")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("Pool fraction must be within (0, 1]")
        return v

    def tier_for(self, strength: float) -> StrengthTier:
        """Highest tier whose floor the strength reaches, else the lowest tier"""
        ordered = sorted(self.tiers, key=lambda t: t.min_strength, reverse=True)
        for tier in ordered:
            if strength >= tier.min_strength:
                return tier
        return ordered[-1]


class SafetyMarginSettings(BaseSettings):
    """Safety stock rule"""

    model_config = SettingsConfigDict(env_prefix="MERCH_SAFETY_")

    threshold: Union[float, Literal["auto"]] = Field(
        default="auto",
        description="Fixed units/month, or 'auto' for the percentile of trailing averages",
    )
    percentile: float = Field(default=75.0, description="Percentile used by the auto threshold")
    trailing_months: int = Field(default=6, description="Trailing window length")
    safe_months: float = Field(default=2.0, description="Cover when at or above threshold")
    conservative_months: float = Field(default=1.5, description="Cover below threshold")

    @field_validator("trailing_months")
    @classmethod
    def validate_trailing(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Trailing window must be at least one month")
        return v


class StockSettings(BaseSettings):
    """Base stock recommendation"""

    model_config = SettingsConfigDict(env_prefix="MERCH_STOCK_")

    profile: str = Field(default="demand_aware", description="demand_aware or coverage")
    custom: Optional[StockMultipliers] = Field(default=None, description="Overrides the profile when set")

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        if v not in STOCK_PROFILES:
            raise ValueError(f"Stock profile must be one of: {sorted(STOCK_PROFILES)}")
        return v

    @property
    def multipliers(self) -> StockMultipliers:
        return self.custom or STOCK_PROFILES[self.profile]


class RankingSettings(BaseSettings):
    """Best-seller and visibility flags"""

    model_config = SettingsConfigDict(env_prefix="MERCH_RANK_")

    best_seller_share: float = Field(default=80.0, description="Cumulative % covered by best sellers")
    best_seller_fallback_fraction: float = Field(default=0.2)
    visible_fraction: float = Field(default=0.3, description="Top share of SKUs flagged visible")


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")
    max_quality_issues: int = Field(default=100, description="Issue messages kept in a quality report")


class Settings(BaseSettings):
    """
    Main Engine Settings

    Aggregates all configuration sections and provides a single entry point
    for the engine's configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="merch-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    version: str = Field(default="1.0.0", description="Engine version")

    field_mapping: FieldMapping = Field(default_factory=FieldMapping)
    abc: ABCSettings = Field(default_factory=ABCSettings)
    window: WindowSettings = Field(default_factory=WindowSettings)
    association: AssociationSettings = Field(default_factory=AssociationSettings)
    kits: KitSettings = Field(default_factory=KitSettings)
    safety: SafetyMarginSettings = Field(default_factory=SafetyMarginSettings)
    stock: StockSettings = Field(default_factory=StockSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @model_validator(mode="after")
    def check_trailing_fits_window(self) -> "Settings":
        if self.safety.trailing_months > self.window.size:
            raise ValueError(
                f"Safety trailing window ({self.safety.trailing_months}) "
                f"exceeds the analysis window ({self.window.size})"
            )
        if self.kits.min_strength == "auto" and self.window.size < 3:
            raise ValueError("Automatic kit strength needs an analysis window of at least 3 months")
        return self

    def fingerprint(self) -> str:
        """Stable JSON dump used to key memoised results"""
        return self.model_dump_json(exclude={"monitoring"})


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached engine settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Engine settings instance
    """
    return Settings()
