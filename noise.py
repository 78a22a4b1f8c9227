#
# Simplex noise for N dimensions, vectorized with numpy.
#
# Based on example code by Stefan Gustavson (stegu@itn.liu.se).
# Optimisations by Peter Eastman (peastman@drizzle.stanford.edu).
# Better rank ordering method by Stefan Gustavson in 2012.
#
# This code was placed in the public domain by its original author,
# Stefan Gustavson. You may use it as you see fit, but
# attribution is appreciated.
#
#
import numpy
import itertools


p = numpy.array( [151,160,137,91,90,15,
    131,13,201,95,96,53,194,233,7,225,140,36,103,30,69,142,8,99,37,240,21,10,23,
    190, 6,148,247,120,234,75,0,26,197,62,94,252,219,203,117,35,11,32,57,177,33,
    88,237,149,56,87,174,20,125,136,171,168, 68,175,74,165,71,134,139,48,27,166,
    77,146,158,231,83,111,229,122,60,211,133,230,220,105,92,41,55,46,245,40,244,
    102,143,54, 65,25,63,161, 1,216,80,73,209,76,132,187,208, 89,18,169,200,196,
    135,130,116,188,159,86,164,100,109,198,173,186, 3,64,52,217,226,250,124,123,
    5,202,38,147,118,126,255,82,85,212,207,206,59,227,47,16,58,17,182,189,28,42,
    223,183,170,213,119,248,152, 2,44,154,163, 70,221,153,101,155,167, 43,172,9,
    129,22,39,253, 19,98,108,110,79,113,224,232,178,185, 112,104,218,246,97,228,
    251,34,242,193,238,210,144,12,191,179,162,241, 81,51,145,235,249,14,239,107,
    49,192,214, 31,181,199,106,157,184, 84,204,176,115,121,50,45,127, 4,150,254,
    138,236,205,93,222,114,67,29,24,72,243,141,128,195,78,66,215,61,156,180] )
# Doubled permutation table so hashed lookups never need wrapping.
perm = p[numpy.arange(512) & 255]


# returns floor of floating point array by coercing to integer
def fastfloor(x):
    return numpy.array(numpy.floor(x), dtype = numpy.int64)


def _gradients(N):
    grad = ((0,-1,1),)*N
    grad = numpy.array(list(itertools.product(*grad))[1:])
    return grad[numpy.abs(grad).sum(-1)>=N-1]


#  # N-D simplex noise, better simplex rank ordering method 2012-03-09
class SimplexNoise:
    def __init__(self,seed=None):
        if seed:
            rng = numpy.random.RandomState(seed)
            p0 = rng.randint(256,size=256)
            self.perm0 = p0[numpy.arange(512) & 255]
        else:
            self.perm0 = perm
        self._grads = {}

    def _grad(self, N):
        grad = self._grads.get(N)
        if grad is None:
            grad = _gradients(N)
            self._grads[N] = grad
        return grad

    def noise(self, Z):
        '''
        Z is an (M, N) array of M points in N dimensions; returns M values
        in roughly [-1, 1].
        '''
        Z = numpy.asarray(Z, dtype=float)
        N = Z.shape[-1] #number of dimensions
        N1 = N+1 # number of simplices
        Fn = 1.0*(N1**0.5 - 1)/N
        Gn = 1.0*(N1 - N1**0.5)/N/N1

        #skew the Z data and store in z0
        s = Z.sum(-1) * Fn
        i = fastfloor(Z+s[:,numpy.newaxis])
        t = (i.sum(-1) * Gn) # Factor for unskewing
        Z0 = i - t[:,numpy.newaxis]
        z0 = Z - Z0
        # Offsets come from the unwrapped cell; only the hash is wrapped.
        i = numpy.mod(i, 256)

        # Use magnitude ordering to determine the simplices that the point z0 is located in
        rank = numpy.zeros(Z.shape)
        for l,k in itertools.combinations(range(N),2):
            rank[:,k] += z0[:,k]>=z0[:,l]
            rank[:,l] += z0[:,k]<z0[:,l]

        # ind will contain the skewed indices of the N+1 simplices
        b = numpy.arange(N+1)[:,numpy.newaxis,numpy.newaxis]
        ind = rank>= N - b
        # zk contains the skewed locations of the N+1 simplices
        zk = z0 - ind + 1.0 * b * Gn

        indi = (ind) % 255 + i
        grad = self._grad(N)

        gik = 0
        for x in range(N-1,-1,-1):
            gik = self.perm0[indi[:,:,x] + gik]
        gik = gik%(grad.shape[0])
        # Calculate the contribution from the simplices
        tk = 0.5 - (zk*zk).sum(-1)
        tp = tk>=0
        tk = tp * tk * tk
        nk = tp * tk * tk * (grad[gik]*zk).sum(-1)

        # Sum up and scale the result to cover the range [-1,1]
        return nk.sum(0) * (2**6 )


class NoiseSource(object):
    """Seeded coherent noise handed untouched to terrain generators.

    Lookups are read-only, so one instance may be shared by threads
    building different sectors.
    """
    def __init__(self, seed=None):
        self.seed = seed
        self.simplex = SimplexNoise(seed=seed)

    def noise(self, Z):
        return self.simplex.noise(Z)

    def noise2(self, x, z):
        return float(self.simplex.noise(numpy.array([[x, z]], dtype=float))[0])

    def noise3(self, x, y, z):
        return float(self.simplex.noise(numpy.array([[x, y, z]], dtype=float))[0])

    def __repr__(self):
        return f"NoiseSource(seed={self.seed!r})"
