"""
Inventory voice intake - turn a spoken description and photos of a part
into a structured inventory item.
"""

__version__ = "0.1.0"
