"""
Biome layer of the world.

Biomes are authored as sparse per-cell overrides on top of a default
biome. The layer derives CellData records and movement costs from them.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from wayfield.core.errors import ValidationError
from wayfield.models.grid import BiomeType, CellData, GridCell, TerrainChunkId
from wayfield.models.world import WorldConfig

logger = logging.getLogger(__name__)


class TerrainLayer:
    """
    Per-cell biome classification.

    Attributes:
        world: World configuration bounding the layer
        default_biome: Biome of cells without an override
    """

    def __init__(
        self,
        world: WorldConfig,
        overrides: Optional[Mapping[GridCell, BiomeType]] = None,
        default_biome: BiomeType = BiomeType.GRASSLAND,
    ):
        """
        Initialize the layer.

        Args:
            world: World configuration
            overrides: Initial per-cell biomes
            default_biome: Biome of every other cell
        """
        self.world = world
        self.default_biome = default_biome
        self._overrides: Dict[GridCell, BiomeType] = {}
        if overrides:
            self.set_biomes(overrides.items())

    def __len__(self) -> int:
        return len(self._overrides)

    def biome_at(self, cell: GridCell) -> BiomeType:
        """Biome of a cell."""
        return self._overrides.get(cell, self.default_biome)

    def movement_cost(self, cell: GridCell) -> Optional[float]:
        """Biome movement cost of a cell, None when impassable or outside the world."""
        if not self.world.contains_cell(cell):
            return None
        return self.biome_at(cell).movement_cost

    def is_traversable(self, cell: GridCell) -> bool:
        return self.movement_cost(cell) is not None

    def set_biomes(self, changes: Iterable[Tuple[GridCell, BiomeType]]) -> List[GridCell]:
        """
        Override the biome of cells.

        Args:
            changes: (cell, biome) pairs

        Returns:
            Cells whose biome actually changed, sorted

        Raises:
            ValidationError: If a cell lies outside the world
        """
        changes = list(changes)
        for cell, _ in changes:
            if not self.world.contains_cell(cell):
                raise ValidationError(
                    f"Cell ({cell.col}, {cell.row}) is outside the world",
                    field="cell",
                    details={"cell": [cell.col, cell.row]},
                )

        changed = []
        for cell, biome in changes:
            biome = BiomeType(biome)
            if self.biome_at(cell) == biome:
                continue
            if biome == self.default_biome:
                self._overrides.pop(cell, None)
            else:
                self._overrides[cell] = biome
            changed.append(cell)

        if changed:
            logger.debug(f"Biome changed for {len(changed)} cells")
        return sorted(changed)

    def overrides(self) -> Dict[GridCell, BiomeType]:
        """Copy of the current overrides."""
        return dict(self._overrides)

    def cell_data(self, cell: GridCell) -> CellData:
        return CellData.for_cell(cell, self.biome_at(cell))

    def chunk_cells(self, chunk_id: TerrainChunkId) -> Tuple[CellData, ...]:
        """Cell records of a chunk, row-major."""
        return tuple(self.cell_data(cell) for cell in chunk_id.cells())
