"""Domain types — NewType aliases for type-safe identifiers."""

from typing import NewType

ConversionId = NewType("ConversionId", str)
