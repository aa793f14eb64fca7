"""
Data Generation Module
"""
from .generators import CatalogGenerator, SalesGenerator, generate_sales

__all__ = [
    "CatalogGenerator",
    "SalesGenerator",
    "generate_sales",
]
