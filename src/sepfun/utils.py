import numpy as np
from typing import Tuple
from numba import njit, prange
from scipy.fft import dct, fft, ifft, fftshift, ifftshift
from scipy.linalg import eigvals
from sepfun import NP_FLOAT, NP_COMPLEX, EPS


"""Utility functions"""


def classify(domain, dimension: int = 1) -> Tuple[float, ...]:
    """Validate a (product) domain given as flat bounds."""
    domain = tuple(float(d) for d in np.asarray(domain, dtype=NP_FLOAT).ravel())
    ###
    if len(domain) != 2 * dimension:
        raise ValueError(
            f"The domain should consist of {2 * dimension} bounds, got {len(domain)}."
        )
    for i in range(dimension):
        a, b = domain[2 * i], domain[2 * i + 1]
        if not (np.isfinite(a) and np.isfinite(b)):
            raise ValueError("The domain bounds should be finite.")
        if not a < b:
            raise ValueError("The domain bounds should be increasing.")
    ###
    return domain


def to_reference(x: np.ndarray, a: float, b: float) -> np.ndarray:
    """Map [a, b] onto [-1, 1]"""
    return (2.0 * x - (a + b)) / (b - a)


def from_reference(s: np.ndarray, a: float, b: float) -> np.ndarray:
    """Map [-1, 1] onto [a, b]"""
    return 0.5 * (b - a) * (s + 1.0) + a


# nodes


def chebpts2(n: int) -> np.ndarray:
    """O(n)"""
    n = int(n)
    ###
    if n < 1:
        raise ValueError("The parameter ``n`` should be positive.")
    if n == 1:
        return np.zeros(1, dtype=NP_FLOAT)
    points = -np.cos(np.arange(n, dtype=NP_FLOAT) * np.pi / (n - 1))
    ### NOTE -- exact symmetry about the origin
    return 0.5 * (points - points[::-1])


def chebpts1(n: int) -> np.ndarray:
    """O(n)"""
    n = int(n)
    if n < 1:
        raise ValueError("The parameter ``n`` should be positive.")
    points = -np.cos((2.0 * np.arange(n, dtype=NP_FLOAT) + 1.0) * np.pi / (2.0 * n))
    return 0.5 * (points - points[::-1])


def chebpts2_weights(n: int) -> np.ndarray:
    """Barycentric weights of the Chebyshev points of the second kind."""
    n = int(n)
    if n == 1:
        return np.ones(1, dtype=NP_FLOAT)
    w = np.ones(n, dtype=NP_FLOAT)
    w[1::2] = -1.0
    w[0] *= 0.5
    w[-1] *= 0.5
    return w


def trigpts(n: int) -> np.ndarray:
    """O(n)"""
    n = int(n)
    if n < 1:
        raise ValueError("The parameter ``n`` should be positive.")
    return -1.0 + 2.0 * np.arange(n, dtype=NP_FLOAT) / n


# transforms


def vals2coeffs(values: np.ndarray) -> np.ndarray:
    """O(n log(n))"""
    values = np.asarray(values)
    if np.iscomplexobj(values):
        return vals2coeffs(values.real) + 1j * vals2coeffs(values.imag)
    values = values.astype(NP_FLOAT)
    ###
    n = values.shape[0]
    if n == 1:
        return values.copy()
    coeffs = dct(values[::-1], type=1, axis=0) / (n - 1)
    coeffs[0] /= 2.0
    coeffs[-1] /= 2.0
    return coeffs


def coeffs2vals(coeffs: np.ndarray) -> np.ndarray:
    """O(n log(n))"""
    coeffs = np.asarray(coeffs)
    if np.iscomplexobj(coeffs):
        return coeffs2vals(coeffs.real) + 1j * coeffs2vals(coeffs.imag)
    coeffs = coeffs.astype(NP_FLOAT)
    ###
    n = coeffs.shape[0]
    if n == 1:
        return coeffs.copy()
    c = coeffs.copy()
    c[1:-1] /= 2.0
    return dct(c, type=1, axis=0)[::-1]


def trig_vals2coeffs(values: np.ndarray) -> np.ndarray:
    """O(n log(n)), coefficients ordered by wave number -m, ..., m"""
    values = np.asarray(values).astype(NP_COMPLEX)
    n = len(values)
    coeffs = fftshift(fft(values)) / n
    if n % 2 == 0:
        ### NOTE -- split the Nyquist mode symmetrically
        coeffs = np.concatenate((coeffs, coeffs[:1]))
        coeffs[0] *= 0.5
        coeffs[-1] *= 0.5
    return coeffs


def trig_coeffs2vals(coeffs: np.ndarray, n: int = None) -> np.ndarray:
    """O(n log(n)), values on ``n`` equispaced points, ``n`` odd"""
    coeffs = np.asarray(coeffs).astype(NP_COMPLEX)
    n = len(coeffs) if n is None else int(n)
    if n % 2 == 0 or n < len(coeffs):
        raise ValueError("The number of points should be odd and not truncate.")
    coeffs = trig_prolong(coeffs, n)
    return ifft(ifftshift(coeffs)) * n


def trig_prolong(coeffs: np.ndarray, n: int) -> np.ndarray:
    """Pad or truncate centered coefficients symmetrically to odd length ``n``"""
    coeffs = np.asarray(coeffs)
    m, k = (len(coeffs) - 1) // 2, (int(n) - 1) // 2
    if k >= m:
        pad = np.zeros(k - m, dtype=coeffs.dtype)
        return np.concatenate((pad, coeffs, pad))
    return coeffs[m - k : m + k + 1].copy()


def prolong(coeffs: np.ndarray, n: int) -> np.ndarray:
    """Pad or truncate Chebyshev coefficients to length ``n``"""
    coeffs = np.asarray(coeffs)
    n = int(n)
    if n <= len(coeffs):
        return coeffs[:n].copy()
    return np.concatenate((coeffs, np.zeros(n - len(coeffs), dtype=coeffs.dtype)))


# point evaluation


@njit(parallel=True)
def chebyshev2point(
    coefficients: np.ndarray,
    points: np.ndarray,
) -> np.ndarray:
    """O(Nn)"""
    ### NOTE -- no type conversion, Clenshaw recurrence
    n = len(coefficients)
    len_points = len(points)
    values = np.zeros(len_points, dtype=np.float64)
    for l in prange(len_points):
        x = points[l]
        bk1, bk2 = 0.0, 0.0
        for k in range(n - 1, 0, -1):
            bk = coefficients[k] + 2.0 * x * bk1 - bk2
            bk2 = bk1
            bk1 = bk
        values[l] = coefficients[0] + x * bk1 - bk2
    return values


@njit(parallel=True)
def trigonometric2point(
    coefficients: np.ndarray,
    points: np.ndarray,
) -> np.ndarray:
    """O(Nn)"""
    ### NOTE -- no type conversion, coefficients complex and centered
    n = len(coefficients)
    m = (n - 1) // 2
    len_points = len(points)
    values = np.zeros(len_points, dtype=np.complex128)
    for l in prange(len_points):
        theta = np.pi * (points[l] + 1.0)
        value = 0.0 + 0.0j
        for k in range(n):
            value += coefficients[k] * np.exp(1j * theta * (k - m))
        values[l] = value
    return values


def chebyshev_eval(coeffs: np.ndarray, points: np.ndarray) -> np.ndarray:
    points = np.asarray(points, dtype=NP_FLOAT).ravel()
    if np.iscomplexobj(coeffs):
        return chebyshev2point(
            np.ascontiguousarray(coeffs.real), points
        ) + 1j * chebyshev2point(np.ascontiguousarray(coeffs.imag), points)
    return chebyshev2point(np.asarray(coeffs, dtype=NP_FLOAT), points)


def trig_eval(coeffs: np.ndarray, points: np.ndarray) -> np.ndarray:
    points = np.asarray(points, dtype=NP_FLOAT).ravel()
    return trigonometric2point(np.asarray(coeffs, dtype=NP_COMPLEX), points)


# calculus


@njit
def chebyshev_diff(coefficients: np.ndarray) -> np.ndarray:
    """O(n)"""
    n = len(coefficients)
    if n == 1:
        return np.zeros(1, dtype=np.float64)
    d = np.zeros(n + 1, dtype=np.float64)
    for k in range(n - 1, 0, -1):
        d[k - 1] = d[k + 1] + 2.0 * k * coefficients[k]
    d[0] *= 0.5
    return d[: n - 1]


def chebyshev_cumsum(coeffs: np.ndarray) -> np.ndarray:
    """Indefinite integral vanishing at the left end point, O(n)"""
    coeffs = np.asarray(coeffs)
    n = len(coeffs)
    c = np.concatenate((coeffs, np.zeros(2, dtype=coeffs.dtype)))
    b = np.zeros(n + 1, dtype=c.dtype)
    b[1] = c[0] - 0.5 * c[2]
    k = np.arange(2, n + 1)
    b[2:] = (c[1:n] - c[3 : n + 2]) / (2.0 * k)
    signs = (-1.0) ** np.arange(1, n + 1)
    b[0] = -np.sum(b[1:] * signs)
    return b


def chebyshev_integrals(n: int) -> np.ndarray:
    """Integrals of T_0, ..., T_{n-1} over [-1, 1]"""
    k = np.arange(int(n), dtype=NP_FLOAT)
    integrals = np.zeros(int(n), dtype=NP_FLOAT)
    even = k % 2 == 0
    integrals[even] = 2.0 / (1.0 - k[even] ** 2)
    return integrals


def clenshaw_curtis_weights(n: int) -> np.ndarray:
    """O(n^2 log(n))"""
    n = int(n)
    if n == 1:
        return np.array([2.0], dtype=NP_FLOAT)
    return chebyshev_integrals(n) @ vals2coeffs(np.eye(n, dtype=NP_FLOAT))


# resolution


def standard_chop(coeffs: np.ndarray, tol: float = EPS) -> int:
    """
    Chopping rule for coefficient sequences.

    Returns the number of leading coefficients to keep. A return value
    equal to the input length means no plateau was found, so the
    sequence is not resolved.

    References
    ----------
    Aurentz & Trefethen (2017), "Chopping a Chebyshev series",
    ACM Trans. Math. Software.
    """
    coeffs = np.asarray(coeffs)
    n = len(coeffs)
    cutoff = n
    if tol >= 1.0:
        return 1
    if n < 17:
        return cutoff
    ###
    b = np.abs(coeffs).astype(NP_FLOAT)
    m = np.maximum.accumulate(b[::-1])[::-1]
    if m[0] == 0.0:
        return 1
    envelope = m / m[0]
    ### NOTE -- indices below are one-based
    plateau_point, j2 = 0, 0
    for j in range(2, n + 1):
        j2 = int(np.floor(1.25 * j + 5.5))
        if j2 > n:
            return cutoff
        e1, e2 = envelope[j - 1], envelope[j2 - 1]
        if e1 == 0.0:
            plateau_point = j - 1
            break
        r = 3.0 * (1.0 - np.log(e1) / np.log(tol))
        if e2 / e1 > r:
            plateau_point = j - 1
            break
    ###
    if envelope[plateau_point - 1] == 0.0:
        return plateau_point
    j3 = int(np.sum(envelope >= tol ** (7.0 / 6.0)))
    if j3 < j2:
        j2 = j3 + 1
        envelope[j2 - 1] = tol ** (7.0 / 6.0)
    cc = np.log10(envelope[:j2])
    cc = cc + np.linspace(0.0, (-1.0 / 3.0) * np.log10(tol), j2)
    d = int(np.argmin(cc)) + 1
    return max(d - 1, 1)


def trig_chop(coeffs: np.ndarray, tol: float = EPS) -> int:
    """Number of kept wave numbers ``m``, i.e. ``|k| < m``; unresolved if equal to ``(len + 1) // 2``"""
    coeffs = np.asarray(coeffs)
    m = (len(coeffs) - 1) // 2
    a = np.abs(coeffs)
    envelope = a[m:].copy()
    envelope[1:] += a[:m][::-1]
    return standard_chop(envelope, tol)


def effective_tolerance(tol: float, vscale: float, vscale_hint: float = None) -> float:
    """Tolerance relative to the local scale when a global scale is given."""
    if vscale_hint is None or vscale == 0.0:
        return tol
    return min(tol * max(vscale_hint / vscale, 1.0), 1.0)


# roots


def colleague_roots(coeffs: np.ndarray) -> np.ndarray:
    """O(n^3)"""
    coeffs = np.asarray(coeffs)
    scale = np.max(np.abs(coeffs)) if len(coeffs) else 0.0
    if scale == 0.0:
        return np.zeros(0, dtype=NP_FLOAT)
    coeffs = coeffs[: np.max(np.nonzero(np.abs(coeffs) > EPS * scale)[0]) + 1]
    n = len(coeffs) - 1
    if n == 0:
        return np.zeros(0, dtype=NP_FLOAT)
    if n == 1:
        return np.array([-coeffs[0] / coeffs[1]])
    C = np.zeros((n, n), dtype=coeffs.dtype)
    C[0, 1] = 1.0
    for k in range(1, n - 1):
        C[k, k - 1] = 0.5
        C[k, k + 1] = 0.5
    C[n - 1, n - 2] = 0.5
    C[n - 1, :] -= coeffs[:n] / (2.0 * coeffs[n])
    return eigvals(C)


def chebyshev_roots(coeffs: np.ndarray, tol: float = EPS, htol: float = 1e-8) -> np.ndarray:
    """Real roots in [-1, 1], recursive subdivision for long expansions"""
    coeffs = np.asarray(coeffs)
    n = len(coeffs)
    if n > 50:
        split = -0.004849834917525
        roots = []
        for a, b in ((-1.0, split), (split, 1.0)):
            piece = vals2coeffs(chebyshev_eval(coeffs, from_reference(chebpts2(n), a, b)))
            cutoff = standard_chop(piece, tol)
            roots.append(from_reference(chebyshev_roots(piece[:cutoff], tol, htol), a, b))
        roots = np.sort(np.concatenate(roots))
    else:
        roots = colleague_roots(coeffs)
        roots = roots[np.abs(np.imag(roots)) <= htol]
        roots = np.sort(np.real(roots))
        roots = roots[np.abs(roots) <= 1.0 + htol]
        roots = np.clip(roots, -1.0, 1.0)
    if len(roots) > 1:
        keep = np.concatenate(([True], np.diff(roots) > 1e-12))
        roots = roots[keep]
    return roots


# barycentric matrices


@njit
def barycentric2derivative(x: np.ndarray, w: np.ndarray) -> np.ndarray:
    """O(n^2)"""
    n = len(x)
    D = np.zeros((n, n), dtype=np.float64)
    for i in range(n):
        diagonal = 0.0
        for j in range(n):
            if i != j:
                D[i, j] = (w[j] / w[i]) / (x[i] - x[j])
                diagonal -= D[i, j]
        D[i, i] = diagonal
    return D


@njit
def barycentric2point(y: np.ndarray, x: np.ndarray, w: np.ndarray) -> np.ndarray:
    """O(mn)"""
    m, n = len(y), len(x)
    P = np.zeros((m, n), dtype=np.float64)
    for i in range(m):
        exact = -1
        for j in range(n):
            if y[i] == x[j]:
                exact = j
        if exact >= 0:
            P[i, exact] = 1.0
            continue
        s = 0.0
        for j in range(n):
            P[i, j] = w[j] / (y[i] - x[j])
            s += P[i, j]
        for j in range(n):
            P[i, j] /= s
    return P


def trig2derivative(n: int, length: float = 2.0) -> np.ndarray:
    """Fourier differentiation matrix on ``n`` (odd) equispaced points of a period ``length``"""
    n = int(n)
    k = np.fft.fftfreq(n) * n
    D = np.real(ifft(1j * k[:, None] * fft(np.eye(n), axis=0), axis=0))
    return D * (2.0 * np.pi / length)


# ultraspherical spaces


@njit
def ultraspherical2derivative(n: int, lam: int) -> np.ndarray:
    """Differentiation C^(lam) -> C^(lam + 1), O(n)"""
    D = np.zeros((n, n), dtype=np.float64)
    for j in range(1, n):
        D[j - 1, j] = j if lam == 0 else 2.0 * lam
    return D


@njit
def ultraspherical2conversion(n: int, lam: int) -> np.ndarray:
    """Conversion C^(lam) -> C^(lam + 1), O(n)"""
    S = np.zeros((n, n), dtype=np.float64)
    if lam == 0:
        S[0, 0] = 1.0
        for j in range(1, n):
            S[j, j] = 0.5
        for j in range(n - 2):
            S[j, j + 2] = -0.5
    else:
        for j in range(n):
            S[j, j] = lam / (lam + j)
        for j in range(n - 2):
            S[j, j + 2] = -lam / (lam + j + 2.0)
    return S


@njit
def ultraspherical2point(points: np.ndarray, n: int, lam: int) -> np.ndarray:
    """O(mn)"""
    m = len(points)
    V = np.zeros((m, n), dtype=np.float64)
    for i in range(m):
        x = points[i]
        V[i, 0] = 1.0
        if n > 1:
            V[i, 1] = x if lam == 0 else 2.0 * lam * x
        for j in range(1, n - 1):
            if lam == 0:
                V[i, j + 1] = 2.0 * x * V[i, j] - V[i, j - 1]
            else:
                V[i, j + 1] = (
                    2.0 * (j + lam) * x * V[i, j] - (j + 2.0 * lam - 1.0) * V[i, j - 1]
                ) / (j + 1.0)
    return V


@njit
def _apply_x(P: np.ndarray, lam: int) -> np.ndarray:
    """Multiplication by x in C^(lam), applied to the rows of P, O(n^2)"""
    n = P.shape[0]
    XP = np.zeros_like(P)
    for j in range(n):
        if lam == 0:
            if j == 0:
                if n > 1:
                    XP[1] += P[0]
            else:
                if j + 1 < n:
                    XP[j + 1] += 0.5 * P[j]
                XP[j - 1] += 0.5 * P[j]
        else:
            if j + 1 < n:
                XP[j + 1] += (j + 1.0) / (2.0 * (j + lam)) * P[j]
            if j > 0:
                XP[j - 1] += (j + 2.0 * lam - 1.0) / (2.0 * (j + lam)) * P[j]
    return XP


@njit
def ultraspherical2multiplication(b: np.ndarray, n: int, lam: int) -> np.ndarray:
    """Multiplication by sum_j b_j C^(lam)_j in C^(lam), O(len(b) n^2)"""
    M = b[0] * np.eye(n)
    if len(b) == 1:
        return M
    P0 = np.eye(n)
    P1 = _apply_x(P0, lam) if lam == 0 else 2.0 * lam * _apply_x(P0, lam)
    M += b[1] * P1
    for j in range(1, len(b) - 1):
        XP = _apply_x(P1, lam)
        if lam == 0:
            P2 = 2.0 * XP - P0
        else:
            P2 = (2.0 * (j + lam) * XP - (j + 2.0 * lam - 1.0) * P0) / (j + 1.0)
        M += b[j + 1] * P2
        P0, P1 = P1, P2
    return M


# pivot search


@njit
def pivot_search(R: np.ndarray) -> Tuple[int, int]:
    """Location of the entry of maximal magnitude, O(mn)"""
    m, n = R.shape
    value, ii, jj = -1.0, 0, 0
    for i in range(m):
        for j in range(n):
            a = np.abs(R[i, j])
            if a > value:
                value, ii, jj = a, i, j
    return ii, jj
