"""Catalog synchronization engine.

Reconciles category, manufacturer, parameter and product data from a
structured supplier feed and a scraped supplier feed into one canonical
local catalog.
"""

__version__ = "0.1.0"
