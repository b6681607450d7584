"""
Geometry consolidation.

Modules:
    converter: element classification, merging and bounding entries
    settings: conversion policy
"""

from .converter import FragmentConverter, SpatialStructureError, classify_element
from .settings import ConverterSettings

__all__ = ["ConverterSettings", "FragmentConverter", "SpatialStructureError", "classify_element"]
