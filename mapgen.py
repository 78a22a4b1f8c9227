#std/external libs
import time
import threading
import concurrent.futures
import numpy

#local libs
from config import SECTOR_SIZE, SECTOR_HEIGHT
from biomes import Biome, FlatGenerator, NoiseGenerator, NoiseBiomeGrid
from interpolation import ChunkInterpolator3
import noise
import config
import logutil

noise_source = None
biome_grid = None
_init_lock = threading.Lock()


def default_biomes():
    return [
        Biome('ocean', NoiseGenerator(base_height=46, step=90.0, scale=8.0, offset=0)),
        Biome('plains', NoiseGenerator(base_height=68, step=110.0, scale=5.0, offset=310)),
        Biome('forest', NoiseGenerator(base_height=72, step=70.0, scale=9.0, offset=620)),
        Biome('mesa', FlatGenerator(height=92)),
        Biome('hills', NoiseGenerator(base_height=84, step=48.0, scale=22.0, offset=930)),
        Biome('mountains', NoiseGenerator(base_height=110, step=40.0, scale=38.0, offset=1240)),
    ]


def initialize_map_generator(seed = None, biomes = None):
    global noise_source, biome_grid
    if seed == None:
        seed = int(time.time())
    noise_source = noise.NoiseSource(seed = seed+12)
    biome_grid = NoiseBiomeGrid(seed = seed+14, biomes = biomes or default_biomes())
    logutil.log('MAPGEN', f"density generator ready (seed {seed}, {len(biome_grid.biomes)} biomes)")


def sector_chunk(position):
    """Sector (chunk) coordinates for a sector origin given in world blocks."""
    return int(position[0]) // SECTOR_SIZE, int(position[2]) // SECTOR_SIZE


def _ensure_generator():
    if biome_grid is None:
        with _init_lock:
            if biome_grid is None:
                initialize_map_generator()


def build_interpolator(position, world = None):
    _ensure_generator()
    chunk_x, chunk_z = sector_chunk(position)
    return ChunkInterpolator3(world, chunk_x, chunk_z, biome_grid, noise_source)


def generate_density_sector(position, world = None):
    """ Density for every block of the sector at ``position`` (world block
    origin, y ignored), shape (SECTOR_SIZE, SECTOR_HEIGHT, SECTOR_SIZE).
    Positive values are inside terrain.

    """
    return build_interpolator(position, world).sector_values()


def generate_density_sectors(positions, world = None, workers = None):
    """Build several sectors on a thread pool; returns {position: density}.

    Each sector gets its own interpolator. The first failure is re-raised.
    """
    _ensure_generator()
    if workers is None:
        workers = getattr(config, 'DENSITY_WORKERS', 4)
    positions = [tuple(p) for p in positions]
    results = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix='density') as pool:
        futures = {pool.submit(generate_density_sector, pos, world): pos for pos in positions}
        for fut in concurrent.futures.as_completed(futures):
            results[futures[fut]] = fut.result()
    return results


def column_heights(density):
    """Highest y with positive density per (x, z) column, -1 where there is none."""
    solid = density > 0
    any_solid = solid.any(axis=1)
    rev = solid[:, ::-1, :]
    top_from_rev = numpy.argmax(rev, axis=1)
    heights = (SECTOR_HEIGHT - 1) - top_from_rev
    return numpy.where(any_solid, heights, -1)
