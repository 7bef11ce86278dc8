"""
Terrain layers.

Biome classification of grid cells and the cell records derived from it.
"""

from wayfield.core.terrain.biomes import TerrainLayer

__all__ = ["TerrainLayer"]
