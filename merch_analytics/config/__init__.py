"""
Merchandising Analytics Engine
Configuration Module
"""
from .settings import (
    ABC_PROFILES,
    STOCK_PROFILES,
    ABCThresholds,
    FieldMapping,
    MinMaxConvention,
    Settings,
    StockMultipliers,
    WindowAnchor,
    get_settings,
)

__all__ = [
    "ABC_PROFILES",
    "STOCK_PROFILES",
    "ABCThresholds",
    "FieldMapping",
    "MinMaxConvention",
    "Settings",
    "StockMultipliers",
    "WindowAnchor",
    "get_settings",
]
