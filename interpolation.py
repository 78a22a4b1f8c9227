#std/external libs
import time
import numpy

#local libs
from config import SECTOR_SIZE, SECTOR_HEIGHT, LATTICE_STEP, HALO, CELLS_XZ, CELLS_Y, \
    CORNER_COLUMNS, LATTICE_COLUMNS, LATTICE_LAYERS
from biomes import GenerationPhase
import config
import logutil

# Neighbour offsets in (x, z). The first four are the orthogonal cross.
NEIGHBOURS = ((1, 0), (0, 1), (-1, 0), (0, -1), (1, 1), (-1, -1), (1, -1), (-1, 1))
CROSS = NEIGHBOURS[:4]


def _check_index(name, value, limit):
    if not 0 <= value < limit:
        raise IndexError(f"{name} index {value} outside 0..{limit - 1}")


class Interpolator3(object):
    """Trilinear interpolation across one coarse cell.

    Corners are named cXYZ, one bit per axis (0 = low face, 1 = high face).
    """
    __slots__ = ('c000', 'c100', 'c010', 'c110', 'c001', 'c101', 'c011', 'c111')

    def __init__(self, c000, c100, c010, c110, c001, c101, c011, c111):
        self.c000 = c000
        self.c100 = c100
        self.c010 = c010
        self.c110 = c110
        self.c001 = c001
        self.c101 = c101
        self.c011 = c011
        self.c111 = c111

    @property
    def corners(self):
        return (self.c000, self.c100, self.c010, self.c110,
                self.c001, self.c101, self.c011, self.c111)

    def trilerp(self, u, v, w):
        iu = 1 - u
        iv = 1 - v
        iw = 1 - w
        return (self.c000 * iu * iv * iw
                + self.c100 * u * iv * iw
                + self.c010 * iu * v * iw
                + self.c110 * u * v * iw
                + self.c001 * iu * iv * w
                + self.c101 * u * iv * w
                + self.c011 * iu * v * w
                + self.c111 * u * v * w)

    def __repr__(self):
        return "Interpolator3(%s)" % ", ".join(repr(c) for c in self.corners)


def lookup_generators(grid, x_origin, z_origin):
    """Generator for every lattice column, halo included, indexed [x][z]."""
    gens = []
    for i in range(LATTICE_COLUMNS):
        wx = x_origin + (i - HALO) * LATTICE_STEP
        gens.append([grid.get_generator(wx, z_origin + (j - HALO) * LATTICE_STEP, GenerationPhase.BASE)
                     for j in range(LATTICE_COLUMNS)])
    return gens


def sample_corners(gens, noise, world, x_origin, z_origin, fill_top=False):
    """Raw generator samples on the coarse lattice, indexed [x, z, layer].

    Results are stored as returned, NaN included. Without fill_top the last
    storage layer stays at 0.0.
    """
    samples = numpy.zeros((LATTICE_COLUMNS, LATTICE_COLUMNS, LATTICE_LAYERS), dtype=numpy.float64)
    layers = LATTICE_LAYERS if fill_top else CELLS_Y
    for i in range(LATTICE_COLUMNS):
        wx = x_origin + (i - HALO) * LATTICE_STEP
        for j in range(LATTICE_COLUMNS):
            wz = z_origin + (j - HALO) * LATTICE_STEP
            gen = gens[i][j]
            for k in range(layers):
                samples[i, j, k] = gen.sample(noise, world, wx, k * LATTICE_STEP, wz)
    return samples


def classify_boundaries(gens):
    """Flag corner columns whose 8 neighbours are not all the same generator."""
    flags = numpy.zeros((CORNER_COLUMNS, CORNER_COLUMNS), dtype=bool)
    for x in range(CORNER_COLUMNS):
        for z in range(CORNER_COLUMNS):
            i, j = x + HALO, z + HALO
            comp = gens[i][j]
            for dx, dz in NEIGHBOURS:
                if comp != gens[i + dx][j + dz]:
                    flags[x, z] = True
                    break
    return flags


def blend_corners(samples, flags, gens):
    """Effective value of every corner column at every layer, indexed [x, layer, z].

    Boundary columns take the 3x3 mean, minimal-interpolation generators keep
    the raw sample and everything else takes the 5 point cross mean.
    """
    corners = numpy.empty((CORNER_COLUMNS, LATTICE_LAYERS, CORNER_COLUMNS), dtype=numpy.float64)
    for x in range(CORNER_COLUMNS):
        for z in range(CORNER_COLUMNS):
            i, j = x + HALO, z + HALO
            if flags[x, z]:
                total = samples[i, j].copy()
                for dx, dz in NEIGHBOURS:
                    total += samples[i + dx, j + dz]
                corners[x, :, z] = total / 9.0
            elif gens[i][j].uses_minimal_interpolation():
                corners[x, :, z] = samples[i, j]
            else:
                total = samples[i, j].copy()
                for dx, dz in CROSS:
                    total += samples[i + dx, j + dz]
                corners[x, :, z] = total / 5.0
    return corners


def cell_index(cx, cy, cz):
    return (cx * CELLS_Y + cy) * CELLS_XZ + cz


def build_cells(corners):
    """Flat list of Interpolator3 cells, see cell_index for the layout."""
    c = corners.tolist()
    cells = [None] * (CELLS_XZ * CELLS_Y * CELLS_XZ)
    for x in range(CELLS_XZ):
        for y in range(CELLS_Y):
            for z in range(CELLS_XZ):
                cells[cell_index(x, y, z)] = Interpolator3(
                    c[x][y][z],
                    c[x + 1][y][z],
                    c[x][y + 1][z],
                    c[x + 1][y + 1][z],
                    c[x][y][z + 1],
                    c[x + 1][y][z + 1],
                    c[x][y + 1][z + 1],
                    c[x + 1][y + 1][z + 1])
    return cells


class ChunkInterpolator(object):
    """Interpolated noise at sector-local coordinates."""

    def get_noise(self, x, y, z):
        raise NotImplementedError

    def get_noise_2d(self, x, z):
        return self.get_noise(x, 0, z)


class ChunkInterpolator3(ChunkInterpolator):
    """Biome-blended 3D noise for one sector.

    Samples every LATTICE_STEP blocks (plus one halo column per side), blends
    samples across biome boundaries and trilinearly interpolates the rest.
    The instance is read-only once constructed; a failed construction raises
    and leaves nothing behind.

    world:  opaque handle passed through to generators
    chunk_x, chunk_z: sector coordinates (world block = chunk * SECTOR_SIZE)
    grid:   BiomeGrid, must be pure over world coordinates
    noise:  noise source passed through to generators
    """

    def __init__(self, world, chunk_x, chunk_z, grid, noise):
        self.world = world
        self.noise = noise
        self.chunk_x = chunk_x
        self.chunk_z = chunk_z
        self.x_origin = chunk_x * SECTOR_SIZE
        self.z_origin = chunk_z * SECTOR_SIZE
        t0 = time.perf_counter()
        with logutil.chunk_tag(chunk_x, chunk_z):
            try:
                gens = lookup_generators(grid, self.x_origin, self.z_origin)
                flags = classify_boundaries(gens)
                samples = sample_corners(gens, noise, world, self.x_origin, self.z_origin,
                                         fill_top=getattr(config, 'FILL_TOP_LAYER', False))
                corners = blend_corners(samples, flags, gens)
                cells = build_cells(corners)
            except Exception as e:
                logutil.log('INTERP', f"build failed at origin ({self.x_origin},{self.z_origin}): {e!r}", level="ERROR")
                raise
            if getattr(config, 'LOG_NONFINITE_SAMPLES', True):
                bad = int(numpy.count_nonzero(~numpy.isfinite(samples)))
                if bad:
                    logutil.log('INTERP', f"{bad} non-finite lattice samples", level="WARN")
            for arr in (samples, flags, corners):
                arr.flags.writeable = False
            self._gens = tuple(tuple(col) for col in gens)
            self._flags = flags
            self._samples = samples
            self._corners = corners
            self._cells = cells
            ms = (time.perf_counter() - t0) * 1000.0
            logutil.log('INTERP', f"built in {ms:.2f}ms, {self.boundary_count} boundary columns")
            if ms > getattr(config, 'INTERP_SLOW_LOG_MS', 500.0):
                logutil.log('INTERP', f"slow build {ms:.2f}ms", level="WARN")

    # ----- read-only accessors -----

    def generator_at(self, i, j):
        _check_index('column x', i, LATTICE_COLUMNS)
        _check_index('column z', j, LATTICE_COLUMNS)
        return self._gens[i][j]

    def sample_at(self, i, j, layer):
        _check_index('column x', i, LATTICE_COLUMNS)
        _check_index('column z', j, LATTICE_COLUMNS)
        _check_index('layer', layer, LATTICE_LAYERS)
        return float(self._samples[i, j, layer])

    def boundary_at(self, x, z):
        _check_index('corner x', x, CORNER_COLUMNS)
        _check_index('corner z', z, CORNER_COLUMNS)
        return bool(self._flags[x, z])

    def corner_at(self, x, layer, z):
        _check_index('corner x', x, CORNER_COLUMNS)
        _check_index('layer', layer, LATTICE_LAYERS)
        _check_index('corner z', z, CORNER_COLUMNS)
        return float(self._corners[x, layer, z])

    def cell_at(self, cx, cy, cz):
        _check_index('cell x', cx, CELLS_XZ)
        _check_index('cell y', cy, CELLS_Y)
        _check_index('cell z', cz, CELLS_XZ)
        return self._cells[cell_index(cx, cy, cz)]

    @property
    def boundaries(self):
        return self._flags.copy()

    @property
    def boundary_count(self):
        return int(numpy.count_nonzero(self._flags))

    # ----- queries -----

    def get_noise(self, x, y, z):
        """Interpolated value at sector-local (x, y, z).

        x and z must lie in [0, SECTOR_SIZE) and y in [0, SECTOR_HEIGHT);
        anything else raises IndexError.
        """
        cell = self.cell_at(int(x // LATTICE_STEP), int(y // LATTICE_STEP), int(z // LATTICE_STEP))
        return cell.trilerp((x % LATTICE_STEP) / LATTICE_STEP,
                            (y % LATTICE_STEP) / LATTICE_STEP,
                            (z % LATTICE_STEP) / LATTICE_STEP)

    def sector_values(self):
        """Interpolated values for every block, shape (SECTOR_SIZE, SECTOR_HEIGHT, SECTOR_SIZE)."""
        xs = numpy.arange(SECTOR_SIZE)
        ys = numpy.arange(SECTOR_HEIGHT)
        cx = (xs // LATTICE_STEP)[:, None, None]
        cy = (ys // LATTICE_STEP)[None, :, None]
        cz = (xs // LATTICE_STEP)[None, None, :]
        u = ((xs % LATTICE_STEP) / LATTICE_STEP)[:, None, None]
        v = ((ys % LATTICE_STEP) / LATTICE_STEP)[None, :, None]
        w = ((xs % LATTICE_STEP) / LATTICE_STEP)[None, None, :]
        c = self._corners
        out = numpy.zeros((SECTOR_SIZE, SECTOR_HEIGHT, SECTOR_SIZE), dtype=numpy.float64)
        for bz in (0, 1):
            wz = w if bz else 1 - w
            for by in (0, 1):
                wy = v if by else 1 - v
                for bx in (0, 1):
                    wx = u if bx else 1 - u
                    out += c[cx + bx, cy + by, cz + bz] * wx * wy * wz
        return out

    def __repr__(self):
        return f"ChunkInterpolator3(chunk=({self.chunk_x},{self.chunk_z}), boundaries={self.boundary_count})"
