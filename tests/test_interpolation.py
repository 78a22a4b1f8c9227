import math
import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import config
import interpolation
from interpolation import ChunkInterpolator3, Interpolator3, classify_boundaries, blend_corners
from biomes import Biome, BiomeGrid, Generator, FlatGenerator, NoiseGenerator, UniformBiomeGrid
from config import LATTICE_COLUMNS, LATTICE_LAYERS, CORNER_COLUMNS
from noise import NoiseSource


class LinearGenerator(Generator):
    def sample(self, noise, world, x, y, z):
        return float(x + y + z)


class BumpyGenerator(Generator):
    """Non-linear in x and z so cross and square means differ from the centre."""

    def __init__(self, minimal=False):
        super().__init__(minimal)
        self.minimal = minimal

    def sample(self, noise, world, x, y, z):
        return x * x * 0.25 + z * 3.0 - y * 0.5 + (x * z) % 7

    def uses_minimal_interpolation(self):
        return self.minimal


class ConstGenerator(Generator):
    def __init__(self, value, minimal=False):
        super().__init__(value, minimal)
        self.value = value
        self.minimal = minimal

    def sample(self, noise, world, x, y, z):
        return self.value

    def uses_minimal_interpolation(self):
        return self.minimal


class FunctionBiomeGrid(BiomeGrid):
    def __init__(self, fn):
        self.fn = fn

    def get_biome(self, x, z, phase=None):
        return Biome('test', self.fn(x, z))


def _uniform(gen):
    return UniformBiomeGrid(Biome('uniform', gen))


def _gen_grid(default, overrides=()):
    gens = [[default] * LATTICE_COLUMNS for _ in range(LATTICE_COLUMNS)]
    for (i, j), gen in overrides:
        gens[i][j] = gen
    return gens


def _cross_mean(interp, i, j, k):
    total = interp.sample_at(i, j, k)
    for di, dj in ((1, 0), (0, 1), (-1, 0), (0, -1)):
        total += interp.sample_at(i + di, j + dj, k)
    return total / 5.0


# ----- Interpolator3 -----

def test_trilerp_origin_and_centre_are_exact():
    corners = [3.0, -1.5, 7.25, 0.5, 12.0, -4.0, 9.5, 2.0]
    cell = Interpolator3(*corners)
    assert cell.trilerp(0, 0, 0) == corners[0]
    assert cell.trilerp(0.5, 0.5, 0.5) == sum(corners) / 8


def test_trilerp_approaches_far_corner():
    cell = Interpolator3(1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0)
    eps = 1e-9
    assert cell.trilerp(1 - eps, 1 - eps, 1 - eps) == pytest.approx(8.0, abs=1e-7)


def test_trilerp_axis_order():
    # c100 is the +x corner, c010 +y, c001 +z.
    cell = Interpolator3(0.0, 1.0, 10.0, 0.0, 100.0, 0.0, 0.0, 0.0)
    assert cell.trilerp(0.5, 0, 0) == 0.5
    assert cell.trilerp(0, 0.5, 0) == 5.0
    assert cell.trilerp(0, 0, 0.5) == 50.0


# ----- boundary classification -----

def test_uniform_grid_has_no_boundaries():
    flags = classify_boundaries(_gen_grid(ConstGenerator(1.0)))
    assert flags.shape == (CORNER_COLUMNS, CORNER_COLUMNS)
    assert not flags.any()


def test_equal_keys_are_not_boundaries():
    # Distinct instances with the same configuration are the same generator.
    gens = [[ConstGenerator(1.0) for _ in range(LATTICE_COLUMNS)] for _ in range(LATTICE_COLUMNS)]
    assert not classify_boundaries(gens).any()


def test_single_change_flags_only_its_neighbourhood():
    base = ConstGenerator(1.0)
    gens = _gen_grid(base, [((3, 3), ConstGenerator(2.0))])
    flags = classify_boundaries(gens)
    # Lattice column (3, 3) is corner (2, 2); its neighbours are corners 1..3.
    expected = np.zeros_like(flags)
    expected[1:4, 1:4] = True
    assert np.array_equal(flags, expected)


def test_halo_change_flags_edge_corner():
    gens = _gen_grid(ConstGenerator(1.0), [((0, 0), ConstGenerator(2.0))])
    flags = classify_boundaries(gens)
    assert flags[0, 0]
    assert int(flags.sum()) == 1


# ----- blending -----

def test_minimal_interpolation_passthrough():
    interp = ChunkInterpolator3(None, 1, -2, _uniform(BumpyGenerator(minimal=True)), None)
    assert interp.boundary_count == 0
    for x in range(CORNER_COLUMNS):
        for z in range(CORNER_COLUMNS):
            for k in (0, 17, 63):
                assert interp.corner_at(x, k, z) == interp.sample_at(x + 1, z + 1, k)


def test_cross_average_fallback():
    interp = ChunkInterpolator3(None, -3, 5, _uniform(BumpyGenerator(minimal=False)), None)
    for x in range(CORNER_COLUMNS):
        for z in range(CORNER_COLUMNS):
            for k in (0, 31, 63):
                assert interp.corner_at(x, k, z) == _cross_mean(interp, x + 1, z + 1, k)


def test_boundary_uses_square_mean():
    samples = np.arange(LATTICE_COLUMNS * LATTICE_COLUMNS * LATTICE_LAYERS, dtype=float)
    samples = (samples ** 1.5).reshape((LATTICE_COLUMNS, LATTICE_COLUMNS, LATTICE_LAYERS))
    gens = _gen_grid(ConstGenerator(1.0, minimal=True), [((3, 3), ConstGenerator(2.0, minimal=True))])
    flags = classify_boundaries(gens)
    corners = blend_corners(samples, flags, gens)
    for k in (0, 40):
        square = samples[1:4, 1:4, k].sum() / 9.0
        assert corners[1, k, 1] == pytest.approx(square, rel=1e-12)
    # Outside the flagged block minimal interpolation keeps the raw sample.
    assert corners[4, 5, 4] == samples[5, 5, 5]


# ----- facade -----

def test_linear_field_end_to_end():
    interp = ChunkInterpolator3(None, 2, -3, _uniform(LinearGenerator()), None)
    world_x = 2 * 16 + 2
    world_z = -3 * 16 + 2
    assert interp.get_noise(2, 4, 2) == world_x + 4 + world_z
    for x, y, z in ((0, 0, 0), (5, 9, 13), (15, 200, 15), (7.5, 33.25, 1.0)):
        expected = interp.x_origin + x + y + interp.z_origin + z
        assert interp.get_noise(x, y, z) == pytest.approx(expected)


def test_2d_query_is_y_zero():
    interp = ChunkInterpolator3(None, 0, 0, _uniform(BumpyGenerator()), None)
    for x, z in ((0, 0), (3, 14), (9.5, 2.25)):
        assert interp.get_noise_2d(x, z) == interp.get_noise(x, 0, z)


def test_determinism():
    grid = FunctionBiomeGrid(lambda x, z: NoiseGenerator(60 + 10 * ((x // 24) % 3), step=30.0, scale=12.0))
    src = NoiseSource(seed=99)
    a = ChunkInterpolator3('world', 4, 7, grid, src)
    b = ChunkInterpolator3('world', 4, 7, grid, src)
    assert np.array_equal(a.sector_values(), b.sector_values())
    assert a.generator_at(0, 6) == b.generator_at(0, 6)
    assert a.generator_at(0, 6) == NoiseGenerator(60 + 10 * ((4 * 16 - 4) // 24 % 3), step=30.0, scale=12.0)
    for x, y, z in ((0, 0, 0), (11, 71, 6), (15, 255, 15)):
        assert a.get_noise(x, y, z) == b.get_noise(x, y, z)


def _striped_grid():
    gens = [
        NoiseGenerator(60, step=32.0, scale=10.0),
        FlatGenerator(70),
        NoiseGenerator(80, step=24.0, scale=14.0, offset=100, minimal=True),
    ]
    return FunctionBiomeGrid(lambda x, z: gens[((x // 12) + (z // 20)) % 3])


def test_neighbouring_sectors_agree_on_shared_edge():
    grid = _striped_grid()
    src = NoiseSource(seed=7)
    a = ChunkInterpolator3(None, 0, 0, grid, src)
    east = ChunkInterpolator3(None, 1, 0, grid, src)
    south = ChunkInterpolator3(None, 0, 1, grid, src)
    assert a.boundary_count > 0
    for k in range(LATTICE_LAYERS):
        for c in range(CORNER_COLUMNS):
            assert a.corner_at(4, k, c) == east.corner_at(0, k, c)
            assert a.corner_at(c, k, 4) == south.corner_at(c, k, 0)
    for c in range(CORNER_COLUMNS):
        assert a.boundary_at(4, c) == east.boundary_at(0, c)
    edge = 16 - 1e-9
    for y in (0, 37, 130, 251):
        for z in (0, 5, 15):
            assert a.get_noise(edge, y, z) == pytest.approx(east.get_noise(0, y, z), abs=1e-5)
            assert a.get_noise(z, y, edge) == pytest.approx(south.get_noise(z, y, 0), abs=1e-5)


def test_sector_values_match_point_queries():
    interp = ChunkInterpolator3(None, -1, 2, _striped_grid(), NoiseSource(seed=3))
    values = interp.sector_values()
    assert values.shape == (16, 256, 16)
    for x in (0, 3, 5, 15):
        for y in (0, 7, 100, 255):
            for z in (0, 9, 15):
                assert values[x, y, z] == pytest.approx(interp.get_noise(x, y, z), rel=1e-12, abs=1e-12)


def test_out_of_domain_queries_raise():
    interp = ChunkInterpolator3(None, 0, 0, _uniform(LinearGenerator()), None)
    for point in ((16, 0, 0), (0, 0, 16), (0, 256, 0), (-1, 0, 0), (0, -4, 0),
                  (-0.5, 0, 0), (0, -0.1, 0), (0, 0, -3.9)):
        with pytest.raises(IndexError):
            interp.get_noise(*point)
    with pytest.raises(IndexError):
        interp.corner_at(5, 0, 0)
    with pytest.raises(IndexError):
        interp.sample_at(0, -1, 0)


def test_top_layer_left_empty_by_default():
    interp = ChunkInterpolator3(None, 0, 0, _uniform(LinearGenerator()), None)
    assert interp.sample_at(3, 3, 64) == 0.0
    assert interp.corner_at(2, 64, 2) == 0.0
    # The top row of cells still interpolates toward that layer.
    assert interp.get_noise(8, 254, 8) == pytest.approx((8 + 252 + 8) * 0.5)


def test_top_layer_sampled_when_enabled(monkeypatch):
    monkeypatch.setattr(config, 'FILL_TOP_LAYER', True)
    interp = ChunkInterpolator3(None, 0, 0, _uniform(LinearGenerator()), None)
    assert interp.sample_at(3, 3, 64) == 8 + 256 + 8
    assert interp.get_noise(8, 254, 8) == pytest.approx(8 + 254 + 8)


def test_generator_failure_propagates(capsys):
    class Broken(Generator):
        def sample(self, noise, world, x, y, z):
            if y > 100:
                raise RuntimeError("noise backend gone")
            return 0.0

    with pytest.raises(RuntimeError):
        ChunkInterpolator3(None, 0, 0, _uniform(Broken()), None)
    assert "build failed" in capsys.readouterr().out


def test_provider_failure_propagates():
    class Missing(BiomeGrid):
        def get_biome(self, x, z, phase=None):
            raise KeyError((x, z))

    with pytest.raises(KeyError):
        ChunkInterpolator3(None, 0, 0, Missing(), None)


def test_non_finite_samples_propagate(capsys):
    class Holey(Generator):
        def sample(self, noise, world, x, y, z):
            return math.nan if x == 8 else 1.0

    interp = ChunkInterpolator3(None, 0, 0, _uniform(Holey()), None)
    assert math.isnan(interp.sample_at(3, 0, 0))
    assert math.isnan(interp.corner_at(2, 0, 2))
    assert interp.corner_at(0, 0, 0) == 1.0
    assert "non-finite" in capsys.readouterr().out


def test_built_state_is_read_only():
    interp = ChunkInterpolator3(None, 0, 0, _uniform(LinearGenerator()), None)
    with pytest.raises(ValueError):
        interp._corners[0, 0, 0] = 1.0
    flags = interp.boundaries
    flags[0, 0] = True
    assert not interp.boundary_at(0, 0)


def test_lattice_uses_world_coordinates():
    seen = []

    class Recorder(Generator):
        def sample(self, noise, world, x, y, z):
            seen.append((world, x, y, z))
            return 0.0

    ChunkInterpolator3('w', 1, 2, _uniform(Recorder()), None)
    assert len(seen) == LATTICE_COLUMNS * LATTICE_COLUMNS * (LATTICE_LAYERS - 1)
    xs = sorted({s[1] for s in seen})
    zs = sorted({s[3] for s in seen})
    assert xs == [16 + 4 * i for i in range(-1, 6)]
    assert zs == [32 + 4 * i for i in range(-1, 6)]
    assert max(s[2] for s in seen) == 252
    assert {s[0] for s in seen} == {'w'}


def test_module_constants():
    assert interpolation.CROSS == ((1, 0), (0, 1), (-1, 0), (0, -1))
    assert len(interpolation.NEIGHBOURS) == 8
