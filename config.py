# Size of sectors (chunks) produced by the density interpolator.
SECTOR_SIZE = 16 #width and depth (x and z)
SECTOR_HEIGHT = 256 #height of world (y)

# Coarse lattice used to bound the number of noise evaluations per sector.
# Samples are taken every LATTICE_STEP blocks on all three axes.
LATTICE_STEP = 4
# Extra lattice columns sampled beyond each horizontal edge of the sector.
HALO = 1
CELLS_XZ = SECTOR_SIZE // LATTICE_STEP
CELLS_Y = SECTOR_HEIGHT // LATTICE_STEP
CORNER_COLUMNS = CELLS_XZ + 1
LATTICE_COLUMNS = CORNER_COLUMNS + 2 * HALO
# Vertical storage holds one layer above the last sampled one.
LATTICE_LAYERS = CELLS_Y + 1

# The top storage layer is never sampled by default and stays at 0.0, so the
# top row of cells interpolates toward zero. Set True to sample it at y=SECTOR_HEIGHT.
FILL_TOP_LAYER = False

# Thread pool size for multi-sector density builds.
DENSITY_WORKERS = 4

# Reference biome grid: horizontal wavelength (blocks) of the biome selector noise.
BIOME_STEP = 480.0
# Cache biome lookups per grid instance.
BIOME_CACHE = True
# Maximum cached (x, z, phase) lookups per grid; oldest entries are evicted first.
BIOME_CACHE_SIZE = 4096

# Enable ANSI colors in logs.
LOG_COLOR = True

# Log interpolator builds (timings, boundary counts).
LOG_INTERP = False

# Warn when a single interpolator build takes longer than this.
INTERP_SLOW_LOG_MS = 500.0

# Count NaN/inf lattice samples and warn (samples are never altered).
LOG_NONFINITE_SAMPLES = True

# When True, only emit warnings and errors.
LOG_STRICT_ONLY = False
