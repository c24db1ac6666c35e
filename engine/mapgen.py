import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Terrain:
    name: str
    height: float
    walkable: bool


TERRAIN: Dict[str, Terrain] = {
    "GRASS": Terrain("GRASS", 0.0, True),
    "WATER": Terrain("WATER", -0.2, False),
    "MOUNTAIN": Terrain("MOUNTAIN", 1.5, False),
    "BASE": Terrain("BASE", 0.1, True),
}


@dataclass(frozen=True)
class Tile:
    x: int
    z: int
    terrain: str

    @property
    def walkable(self) -> bool:
        return TERRAIN[self.terrain].walkable


class TileMap:
    """Square tile grid centred on the world origin."""

    def __init__(self, tiles: List[Tile], map_size: int, tile_size: float):
        self.map_size = map_size
        self.tile_size = tile_size
        self._tiles: Dict[Tuple[int, int], Tile] = {(t.x, t.z): t for t in tiles}

    @property
    def tiles(self) -> List[Tile]:
        return list(self._tiles.values())

    def tile_at(self, x: int, z: int) -> Optional[Tile]:
        return self._tiles.get((x, z))

    def tile_to_world(self, x: int, z: int) -> Tuple[float, float]:
        half = self.map_size * self.tile_size / 2
        return (x * self.tile_size - half, z * self.tile_size - half)


def generate_map(map_size: int = 20, tile_size: float = 2.0) -> TileMap:
    """Deterministic terrain: ring of mountains, sine-noise lakes and ridges,
    BASE tiles in the two 4x4 home corners."""
    tiles: List[Tile] = []
    for x in range(map_size):
        for z in range(map_size):
            terrain = "GRASS"
            dist_center = math.sqrt((x - map_size / 2) ** 2 + (z - map_size / 2) ** 2)
            noise = math.sin(x * 0.5) * math.cos(z * 0.5)
            if dist_center > map_size * 0.6:
                terrain = "MOUNTAIN"
            elif noise > 0.5:
                terrain = "MOUNTAIN"
            elif noise < -0.5:
                terrain = "WATER"
            if (x < 4 and z < 4) or (x > map_size - 5 and z > map_size - 5):
                terrain = "BASE"
            tiles.append(Tile(x, z, terrain))
    return TileMap(tiles, map_size, tile_size)
