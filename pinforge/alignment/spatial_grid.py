"""Uniform spatial hash over the canvas for neighbor queries.

Advisory only: element geometry lives on the elements, the grid just narrows
which siblings are worth checking.
"""

import logging
import math

from .box import Box

logger = logging.getLogger(__name__)

Cell = tuple[int, int]


class SpatialHashGrid:
    def __init__(self, width: float, height: float, cell_size: int = 100):
        self._cells: dict[Cell, set[str]] = {}
        self._memberships: dict[str, list[Cell]] = {}
        self._configure(width, height, cell_size)

    def _configure(self, width: float, height: float, cell_size: int):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = cell_size
        self.cols = max(1, math.ceil(width / cell_size))
        self.rows = max(1, math.ceil(height / cell_size))

    def _cells_for(self, box: Box) -> list[Cell]:
        start_col = max(0, math.floor(box.left / self.cell_size))
        end_col = min(self.cols - 1, math.floor(box.right / self.cell_size))
        start_row = max(0, math.floor(box.top / self.cell_size))
        end_row = min(self.rows - 1, math.floor(box.bottom / self.cell_size))
        return [
            (col, row)
            for col in range(start_col, end_col + 1)
            for row in range(start_row, end_row + 1)
        ]

    def insert(self, box: Box):
        if box.id in self._memberships:
            self.remove(box.id)
        cells = self._cells_for(box)
        for cell in cells:
            self._cells.setdefault(cell, set()).add(box.id)
        self._memberships[box.id] = cells

    def remove(self, element_id: str):
        for cell in self._memberships.pop(element_id, []):
            ids = self._cells.get(cell)
            if ids is None:
                continue
            ids.discard(element_id)
            if not ids:
                del self._cells[cell]

    def update(self, box: Box):
        self.remove(box.id)
        self.insert(box)

    def get_nearby(self, box: Box, exclude_id: str | None = None) -> set[str]:
        """Ids sharing at least one cell with the box."""
        exclude = box.id if exclude_id is None else exclude_id
        nearby: set[str] = set()
        for cell in self._cells_for(box):
            nearby |= self._cells.get(cell, set())
        nearby.discard(exclude)
        return nearby

    def __contains__(self, element_id: str) -> bool:
        return element_id in self._memberships

    def clear(self):
        self._cells.clear()
        self._memberships.clear()

    def rebuild(
        self,
        width: float,
        height: float,
        cell_size: int | None = None,
        boxes: list[Box] | None = None,
    ):
        """Re-dimension the grid (canvas resize) and re-insert `boxes`."""
        self._configure(width, height, cell_size or self.cell_size)
        self.clear()
        for box in boxes or []:
            self.insert(box)
        logger.debug(f"Spatial grid rebuilt: {self.cols}x{self.rows} cells of {self.cell_size}px")

    def get_stats(self) -> dict[str, float]:
        instances = sum(len(ids) for ids in self._cells.values())
        occupied = len(self._cells)
        return {
            "total_cells": self.cols * self.rows,
            "occupied_cells": occupied,
            "total_elements": instances,
            "avg_elements_per_cell": instances / occupied if occupied else 0,
        }
