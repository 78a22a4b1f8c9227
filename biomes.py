from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Hashable, Sequence, Tuple

import config
import noise


class GenerationPhase(Enum):
    BASE = auto()
    PALETTE_APPLY = auto()
    POPULATE = auto()
    POST_GEN = auto()


class Generator(object):
    """Terrain density source for one biome.

    Two generators are "the same" iff they would produce indistinguishable
    terrain, which is decided by ``key`` rather than by instance identity.
    Subclasses must keep ``key`` immutable and derived only from the
    parameters that shape terrain.
    """
    MINIMAL_INTERPOLATION = False

    def __init__(self, *key):
        self._key = (type(self),) + tuple(key)

    @property
    def key(self) -> Tuple[Hashable, ...]:
        return self._key

    def sample(self, noise, world, x, y, z) -> float:
        raise NotImplementedError

    def uses_minimal_interpolation(self) -> bool:
        return type(self).MINIMAL_INTERPOLATION

    def __eq__(self, other):
        if not isinstance(other, Generator):
            return NotImplemented
        return self._key == other._key

    def __hash__(self):
        return hash(self._key)

    def __repr__(self):
        return f"{type(self).__name__}{self._key[1:]!r}"


class FlatGenerator(Generator):
    """Level plateau: density is the distance below ``height``. Keeps sharp edges."""
    MINIMAL_INTERPOLATION = True

    def __init__(self, height):
        super().__init__(float(height))
        self.height = float(height)

    def sample(self, noise, world, x, y, z):
        return self.height - y


class NoiseGenerator(Generator):
    """Density around ``base_height`` perturbed by 3D simplex noise.

    ``step`` is the noise wavelength in blocks and ``scale`` the amplitude in
    blocks, so the surface wanders roughly ``scale`` blocks above and below
    ``base_height``.
    """

    def __init__(self, base_height, step=64.0, scale=16.0, offset=0.0, minimal=False):
        super().__init__(float(base_height), float(step), float(scale), float(offset), bool(minimal))
        self.base_height = float(base_height)
        self.step = float(step)
        self.scale = float(scale)
        self.offset = float(offset)
        self.minimal = bool(minimal)

    def sample(self, noise, world, x, y, z):
        n = noise.noise3((x + self.offset) / self.step, y / self.step, (z + self.offset) / self.step)
        return self.base_height - y + n * self.scale

    def uses_minimal_interpolation(self):
        return self.minimal


@dataclass(frozen=True)
class Biome:
    name: str
    generator: Generator


class BiomeGrid(object):
    """Maps world (x, z) to a biome.

    Implementations must be pure over world coordinates for the duration of
    a generation pass: neighbouring sectors look up the same halo columns and
    must get equal generators back.
    """

    def get_biome(self, x, z, phase=GenerationPhase.BASE) -> Biome:
        raise NotImplementedError

    def get_generator(self, x, z, phase=GenerationPhase.BASE) -> Generator:
        return self.get_biome(x, z, phase).generator


class UniformBiomeGrid(BiomeGrid):
    def __init__(self, biome: Biome):
        self.biome = biome

    def get_biome(self, x, z, phase=GenerationPhase.BASE):
        return self.biome


class NoiseBiomeGrid(BiomeGrid):
    """Selects among ``biomes`` by banding a low-frequency 2D simplex field.

    The selector noise value in [-1, 1] is split into ``len(biomes)`` equal
    bands, so the lookup depends only on the seed and (x, z). Lookups are
    kept in an LRU cache of at most ``cache_size`` entries; 0 disables it.
    """

    def __init__(self, seed, biomes: Sequence[Biome], step=None, cache=None, cache_size=None):
        if not biomes:
            raise ValueError("NoiseBiomeGrid needs at least one biome")
        self.seed = seed
        self.biomes = tuple(biomes)
        self.step = float(step if step is not None else getattr(config, 'BIOME_STEP', 480.0))
        self.selector = noise.NoiseSource(seed=seed)
        if cache is None:
            cache = getattr(config, 'BIOME_CACHE', True)
        if cache_size is None:
            cache_size = getattr(config, 'BIOME_CACHE_SIZE', 4096)
        self.cache_limit = int(cache_size) if cache else 0
        self._cache: OrderedDict[Tuple[Any, Any, GenerationPhase], Biome] = OrderedDict()
        self._lock = threading.Lock()

    def _select(self, x, z):
        v = self.selector.noise2(x / self.step, z / self.step)
        v = min(max(v, -1.0), 1.0)
        idx = int((v + 1.0) * 0.5 * len(self.biomes))
        return self.biomes[min(idx, len(self.biomes) - 1)]

    def get_biome(self, x, z, phase=GenerationPhase.BASE):
        if self.cache_limit <= 0:
            return self._select(x, z)
        key = (x, z, phase)
        with self._lock:
            biome = self._cache.get(key)
            if biome is not None:
                self._cache.move_to_end(key)
                return biome
        biome = self._select(x, z)
        with self._lock:
            self._cache[key] = biome
            self._cache.move_to_end(key)
            while len(self._cache) > self.cache_limit:
                self._cache.popitem(last=False)
        return biome

    def cache_size(self):
        with self._lock:
            return len(self._cache)
