"""
Merchandising Analytics Engine

ABC classification, demand aggregation, product associations, kit
recommendations and stock guidance over raw sales lines.
"""
from .engine import EngineResult, MerchandisingEngine

__version__ = "1.0.0"

__all__ = ["EngineResult", "MerchandisingEngine", "__version__"]
