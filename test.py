import sepfun
import pytest
import numpy as np
from itertools import product
from sepfun import (
    Fun,
    Chebfun2,
    Chebfun3,
    Diskfun,
    Chebop,
    Preferences,
    expm,
    linearize,
    Linear,
    Nonlinear,
)

# Parameters

discretizations = ["collocation", "ultraspherical"]
domains2 = [(-1.0, 1.0, -1.0, 1.0), (-3.0, 4.0, -1.0, 10.0)]
tolerances = [1e-4, 1e-8, sepfun.EPS]
bases = ["chebyshev", "trig"]
HEAT_TIMES = [0.0, 0.001, 0.01, 0.1, 0.5, 1.0]
rng = np.random.default_rng(0)


def random_points(domain, n=50):
    return [
        domain[2 * i] + (domain[2 * i + 1] - domain[2 * i]) * rng.random(n)
        for i in range(len(domain) // 2)
    ]


# Tests


def test_preferences():
    prefs = Preferences()
    assert prefs == sepfun.DEFAULT_PREFERENCES
    assert prefs.tolerance == sepfun.EPS
    assert prefs.discretization == "ultraspherical"
    modified = prefs.replace(discretization="collocation", max_rank=10)
    assert modified.discretization == "collocation"
    assert modified.max_rank == 10
    assert prefs.discretization == "ultraspherical"
    with pytest.raises(ValueError):
        Preferences(tolerance=0.0)
    with pytest.raises(ValueError):
        Preferences(discretization="spectral")
    with pytest.raises(ValueError):
        Preferences(max_sampling=9)
    with pytest.raises(ValueError):
        prefs.replace(colour="red")


def test_fun_construction_and_calculus():
    f = Fun.from_function(np.exp)
    x = np.linspace(-1.0, 1.0, 101)
    assert np.max(np.abs(f(x) - np.exp(x))) < 1e-13
    assert np.max(np.abs(f.diff()(x) - np.exp(x))) < 1e-11
    assert abs(f.sum() - (np.e - 1.0 / np.e)) < 1e-13
    assert abs(f.cumsum()(1.0) - (np.e - 1.0 / np.e)) < 1e-13
    assert np.isscalar(f(0.5)) or np.ndim(f(0.5)) == 0
    g = Fun.from_function(np.cos, (-4.0, 4.0))
    assert np.allclose(np.sort(g.roots()), [-np.pi / 2, np.pi / 2], atol=1e-12)
    identity = Fun.identity()
    assert abs(identity.norm() - np.sqrt(2.0 / 3.0)) < 1e-14
    h = Fun.from_function(lambda x: np.sin(3 * x))
    assert abs(h.max_abs() - 1.0) < 1e-12
    assert abs(h.norm(np.inf) - 1.0) < 1e-12
    with pytest.raises(ValueError):
        h.norm(1)


def test_fun_zero_and_convergence():
    zero = Fun.from_function(lambda x: 0.0 * x)
    assert len(zero) == 1
    assert zero.vscale == 0.0
    with pytest.raises(sepfun.ConvergenceError):
        Fun.from_function(np.sign, prefs=Preferences(max_length=129))
    noise = Fun.from_function(lambda x: 3e-15 * np.sin(1e4 * x), vscale=1.0)
    assert len(noise) == 1
    assert noise.vscale == 0.0


def test_fun_trig():
    f = Fun.from_function(lambda x: np.exp(np.sin(x)), (-np.pi, np.pi), "trig")
    assert len(f) % 2 == 1
    assert f.isreal
    x = np.linspace(-np.pi, np.pi, 77)
    assert np.max(np.abs(f(x) - np.exp(np.sin(x)))) < 1e-13
    df = np.cos(x) * np.exp(np.sin(x))
    assert np.max(np.abs(f.diff()(x) - df)) < 1e-11
    with pytest.raises(ValueError):
        Fun(np.ones(4), basis="trig")


def test_standard_chop():
    from sepfun.utils import standard_chop

    decay = 10.0 ** (-3.83 - 0.116 * np.arange(25))
    coeffs = np.concatenate((np.ones(5), decay))
    assert standard_chop(coeffs, 1e-4) == 12
    assert standard_chop(np.ones(30), 1e-4) == 30
    assert standard_chop(np.ones(10), 1e-4) == 10


def test_fun_algebra():
    x = np.linspace(-1.0, 1.0, 41)
    f = Fun.from_function(np.sin)
    g = Fun.from_function(np.cos)
    assert np.max(np.abs((f * g)(x) - np.sin(x) * np.cos(x))) < 1e-14
    assert np.max(np.abs((f + 2.0 * g - 1.0)(x) - (np.sin(x) + 2 * np.cos(x) - 1))) < 1e-14
    assert np.max(np.abs((f**2 + g**2)(x) - 1.0)) < 1e-14
    with pytest.raises(sepfun.DomainMismatchError):
        f + Fun.from_function(np.sin, (0.0, 1.0))
    with pytest.raises(sepfun.DomainMismatchError):
        f + Fun.from_function(lambda x: np.sin(np.pi * x), (-1.0, 1.0), "trig")


def test_fun_ufuncs():
    x = np.linspace(0.0, 2.0, 41)
    identity = Fun.identity((0.0, 2.0))
    g = np.exp(identity)
    assert isinstance(g, Fun)
    assert np.max(np.abs(g(x) - np.exp(x))) < 1e-13
    h = np.float64(2.0) * identity - np.float64(1.0)
    assert isinstance(h, Fun)
    assert np.max(np.abs(h(x) - (2.0 * x - 1.0))) < 1e-14
    p = np.hypot(identity, g)
    assert np.max(np.abs(p(x) - np.hypot(x, np.exp(x)))) < 1e-13
    with pytest.raises(sepfun.DomainMismatchError):
        np.hypot(identity, Fun.identity())


@pytest.mark.parametrize("domain", domains2)
def test_cdr_consistency(domain):
    f = Chebfun2(lambda x, y: np.cos(x * y), domain)
    C, D, R = f.cdr()
    assert D.shape == (f.rank, f.rank)
    assert np.allclose(f.cdr(diagonal=True), np.diag(D), rtol=0.0, atol=0.0)
    assert len(f) == f.length() == f.rank == len(C) == len(R)
    x, y = random_points(domain)
    cdr = sum(C[i](x) * D[i, i] * R[i](y) for i in range(f.rank))
    assert np.max(np.abs(cdr - f(x, y))) < 1e-13
    assert np.max(np.abs(f(x, y) - np.cos(x * y))) < 1e-10
    m, n = f.lengths()
    assert m == max(len(c) for c in C)
    assert n == max(len(r) for r in R)


def test_rank_monotone_in_tolerance():
    def f(x, y):
        return np.exp(x * y) / (2.0 + x)

    ranks = []
    for tol in tolerances:
        g = Chebfun2(f, prefs=Preferences(tolerance=tol))
        x, y = random_points(g.domain)
        assert np.max(np.abs(g(x, y) - f(x, y))) < 1e4 * max(tol, 1e-13)
        ranks.append(g.rank)
    assert ranks == sorted(ranks)


def test_rank_zero_and_one():
    for zero in [Chebfun2(0.0), Chebfun2(lambda x, y: 0.0 * x * y)]:
        assert zero.rank == 0
        assert zero.lengths() == (0, 0)
        assert zero(0.3, -0.2) == 0.0
        assert zero.norm() == 0.0
    f = Chebfun2(lambda x, y: (x + 2.0) * (y**2 + 1.0))
    assert f.rank == 1
    assert f.lengths() == (2, 3)


def test_chebfun2_calculus():
    f = Chebfun2(lambda x, y: x**2 + y**2)
    assert abs(f.sum() - 8.0 / 3.0) < 1e-13
    g = Chebfun2(lambda x, y: x * y)
    assert abs(g.norm() - 2.0 / 3.0) < 1e-13
    h = Chebfun2(lambda x, y: np.sin(x) * np.cos(y), (-1.0, 2.0, 0.0, 1.0))
    assert abs(h.diff(1, 0)(0.3, 0.2) - np.cos(0.3) * np.cos(0.2)) < 1e-12
    assert abs(h.diff(1, 1)(0.3, 0.2) + np.sin(0.3) * np.sin(0.2)) < 1e-12
    assert abs(h.max_abs() - 1.0) < 1e-3


def test_chebfun2_algebra():
    f = Chebfun2(lambda x, y: np.cos(x * y))
    g = Chebfun2(lambda x, y: np.exp(x + y))
    x, y = random_points(f.domain)
    assert np.max(np.abs((f + g)(x, y) - np.cos(x * y) - np.exp(x + y))) < 1e-12
    assert np.max(np.abs((f * g)(x, y) - np.cos(x * y) * np.exp(x + y))) < 1e-12
    assert np.max(np.abs((2.0 * f - 1.0)(x, y) - 2.0 * np.cos(x * y) + 1.0)) < 1e-13
    assert (f + f).rank <= f.rank
    assert (f - f).rank == 0
    assert g.rank == 1
    with pytest.raises(sepfun.DomainMismatchError):
        f + Chebfun2(lambda x, y: x, (0.0, 1.0, 0.0, 1.0))


def test_chebfun2_sample_and_coeffs():
    f = Chebfun2(lambda x, y: x + 2.0 * x * y)
    x, y, values = f.sample(11, 7)
    assert values.shape == (11, 7)
    assert np.allclose(values, x[:, None] + 2.0 * np.outer(x, y), atol=1e-14)
    coeffs = f.coeffs()
    assert np.allclose(coeffs[:2, :2], [[0.0, 0.0], [1.0, 2.0]], atol=1e-14)


def test_rank_cap():
    with pytest.raises(sepfun.RankCapError):
        Chebfun2(lambda x, y: np.cos(10.0 * x * y), prefs=Preferences(max_rank=3))


def test_chebfun3():
    def f(x, y, z):
        return np.exp(x) * np.cos(y + z)

    g = Chebfun3(f)
    x, y, z = random_points(g.domain)
    assert np.max(np.abs(g(x, y, z) - f(x, y, z))) < 1e-11
    C, D, R, T = g.cdr()
    cdr = sum(C[i](x) * D[i, i] * R[i](y) * T[i](z) for i in range(g.rank))
    assert np.max(np.abs(cdr - g(x, y, z))) < 1e-13
    assert len(g.lengths()) == 3
    exact = (np.e - 1.0 / np.e) * (2.0 * np.sin(1.0)) ** 2
    assert abs(g.sum() - exact) < 1e-12
    assert np.max(np.abs((g - g)(x, y, z))) < 1e-13
    _, _, _, values = g.sample(5)
    assert values.shape == (5, 5, 5)
    assert Chebfun3(0.0).rank == 0
    with pytest.raises(sepfun.DomainMismatchError):
        g + Chebfun3(f, (0.0, 1.0, 0.0, 1.0, 0.0, 1.0))


def test_diskfun():
    def f(x, y):
        return np.exp(x) * np.cos(y)

    g = Diskfun(f)
    rho, theta = np.sqrt(rng.random(30)), np.pi * (2.0 * rng.random(30) - 1.0)
    x, y = rho * np.cos(theta), rho * np.sin(theta)
    assert np.max(np.abs(g(x, y) - f(x, y))) < 1e-11
    assert np.max(np.abs(g.polar(theta, rho) - f(x, y))) < 1e-11
    assert g.length() == g.rank == g.separable.rank
    assert g.lengths() == g.separable.lengths()
    C, D, R = g.cdr()
    assert C[0].basis == "trig" and R[0].basis == "chebyshev"
    with pytest.raises(ValueError):
        g(1.0, 1.0)
    with pytest.raises(sepfun.DomainMismatchError):
        g + Chebfun2(f)
    with pytest.raises(sepfun.DomainMismatchError):
        Chebfun2(f) + g


def test_linearize():
    result = linearize(lambda u: u.diff(2) + 3 * u, (-1.0, 1.0))
    assert isinstance(result, Linear)
    assert result.block.order == 2
    u = Fun.from_function(lambda x: x**3)
    x = np.linspace(-1.0, 1.0, 21)
    assert np.max(np.abs(result.block.apply(u)(x) - (6 * x + 3 * x**3))) < 1e-13
    result = linearize(lambda x, u: x * u.diff() - u, (0.0, 2.0))
    assert isinstance(result, Linear)
    assert result.block.order == 1
    for op in [
        lambda u: u * u,
        lambda u: u**2,
        lambda u: np.sin(u),
        lambda u: u.diff() + 1.0,
        lambda u: u.diff(2) + abs(u),
        lambda u: 2.0**u,
    ]:
        result = linearize(op, (-1.0, 1.0))
        assert isinstance(result, Nonlinear)
        assert result.reason


@pytest.mark.parametrize("discretization", discretizations)
def test_expm_heat(discretization):
    prefs = Preferences(discretization=discretization)
    L = Chebop(lambda u: u.diff(2), (-1.0, 1.0), lbc=0, rbc=0)
    u0 = Fun.from_function(lambda x: np.exp(-20.0 * (x + 0.3) ** 2))
    U = expm(L, HEAT_TIMES, u0, prefs)
    assert isinstance(U, list) and len(U) == len(HEAT_TIMES)
    x = np.linspace(-1.0, 1.0, 401)
    assert np.max(np.abs(U[0](x) - u0(x))) < 1e-3
    maxima = [u.max_abs() for u in U]
    variations = [np.sum(np.abs(np.diff(u(x)))) for u in U]
    for k in range(1, len(U)):
        assert maxima[k] < maxima[k - 1]
        assert variations[k] <= variations[k - 1] + 1e-8
        assert abs(U[k](-1.0)) < 1e-8 and abs(U[k](1.0)) < 1e-8


@pytest.mark.parametrize("discretization", discretizations)
def test_expm_exact_modes(discretization):
    prefs = Preferences(discretization=discretization)
    x = np.linspace(-1.0, 1.0, 101)
    dirichlet = Chebop(lambda u: u.diff(2), (-1.0, 1.0), lbc=0, rbc=0)
    u0 = Fun.from_function(lambda x: np.sin(np.pi * x))
    u = expm(dirichlet, 0.1, u0, prefs)
    assert isinstance(u, Fun)
    exact = np.exp(-np.pi**2 * 0.1) * np.sin(np.pi * x)
    assert np.max(np.abs(u(x) - exact)) < 1e-8
    neumann = Chebop(
        lambda u: u.diff(2), (-1.0, 1.0), lbc=lambda u: u.diff(), rbc=lambda u: u.diff()
    )
    u0 = Fun.from_function(lambda x: 1.0 + np.cos(np.pi * x))
    u = expm(neumann, [0.2], [u0], prefs)[0]
    exact = 1.0 + np.exp(-np.pi**2 * 0.2) * np.cos(np.pi * x)
    assert np.max(np.abs(u(x) - exact)) < 1e-8
    assert abs(u.sum() - u0.sum()) < 1e-8
    u0 = Fun.from_function(lambda x: np.sin(np.pi * x), (-1.0, 1.0), "trig")
    u = expm(dirichlet, 0.1, u0, prefs)
    exact = np.exp(-np.pi**2 * 0.1) * np.sin(np.pi * x)
    assert np.max(np.abs(u(x) - exact)) < 1e-8


@pytest.mark.parametrize("discretization", discretizations)
def test_expm_variable_coefficient(discretization):
    prefs = Preferences(discretization=discretization)
    x = np.linspace(-1.0, 1.0, 101)
    u0 = Fun.from_function(np.cos)
    multiplication = Chebop(lambda x, u: np.exp(x) * u)
    u = expm(multiplication, 0.5, u0, prefs)
    assert np.max(np.abs(u(x) - np.exp(0.5 * np.exp(x)) * np.cos(x))) < 1e-8
    N = Chebop(lambda x, u: u.diff(2) + np.exp(x) * u, (-1.0, 1.0), lbc=0, rbc=0)
    u0 = Fun.from_function(lambda x: np.sin(np.pi * x))
    u = expm(N, 0.1, u0, prefs)
    reference = expm(N, 0.1, u0, Preferences(discretization="collocation"))
    assert np.max(np.abs(u(x) - reference(x))) < 1e-8
    assert abs(u(-1.0)) < 1e-8 and abs(u(1.0)) < 1e-8


def test_expm_convergence():
    L = Chebop(lambda u: u.diff(2), (-1.0, 1.0), lbc=0, rbc=0)
    u0 = Fun.from_function(lambda x: np.exp(-200.0 * x**2))
    with pytest.raises(sepfun.ConvergenceError):
        expm(L, 1e-5, u0, Preferences(max_dimension=33))
    with pytest.raises(sepfun.ConvergenceError):
        expm(L, 1e-5, u0, Preferences(max_dimension=20))
    assert expm(L, 0.0, u0, Preferences(max_dimension=20)) is u0


def test_expm_periodic_elision():
    domain = (-np.pi, np.pi)
    N = Chebop(lambda u: u.diff(2), domain, bc="periodic")
    u0 = Fun.from_function(lambda x: np.exp(np.sin(x)), domain)
    u_trig = expm(N, 0.5, u0)
    assert u_trig.basis == "trig"
    u_col = expm(N, 0.5, u0, Preferences(discretization="collocation"))
    assert u_col.basis == "chebyshev"
    x = np.linspace(-np.pi, np.pi, 101)
    assert np.max(np.abs(u_trig(x) - u_col(x))) < 1e-6
    u_basis = expm(N, 0.5, u0, Preferences(basis="trig"))
    assert np.max(np.abs(u_basis(x) - u_trig(x))) < 1e-12


def test_expm_nonlinear():
    u0 = Fun.from_function(lambda x: np.exp(-20.0 * (x + 0.3) ** 2))
    N = Chebop(lambda u: u.diff(2) + u * u, (-1.0, 1.0), lbc=0, rbc=0)
    with pytest.raises(sepfun.NonlinearOperatorError):
        expm(N, 0.1, u0)
    with pytest.raises(sepfun.NonlinearOperatorError):
        expm(N)


def test_expm_boundary_conditions():
    u0 = Fun.from_function(lambda x: np.cos(np.pi * x / 2))
    inhomogeneous = Chebop(lambda u: u.diff(2), (-1.0, 1.0), lbc=1, rbc=0)
    with pytest.raises(sepfun.BoundaryConditionError):
        expm(inhomogeneous, 0.1, u0)
    missing = Chebop(lambda u: u.diff(2), (-1.0, 1.0), lbc=0)
    with pytest.raises(sepfun.BoundaryConditionError):
        expm(missing, 0.1, u0)
    overdetermined = Chebop(
        lambda u: u.diff(2), (-1.0, 1.0), lbc=0, rbc=0, bc=lambda x, u: u.sum()
    )
    with pytest.raises(sepfun.BoundaryConditionError):
        expm(overdetermined, 0.1, u0)
    dependent = Chebop(
        lambda u: u.diff(2), (-1.0, 1.0), lbc=0, bc=lambda x, u: 2.0 * u(-1.0)
    )
    with pytest.raises(sepfun.BoundaryConditionError):
        expm(dependent, 0.1, u0)
    N = Chebop(lambda u: u.diff(2), (0.0, 1.0), lbc=0, rbc=0)
    with pytest.raises(sepfun.DomainMismatchError):
        expm(N, 0.1, u0)


def test_expm_deprecated():
    L = Chebop(lambda u: u.diff(2), (-1.0, 1.0), lbc=0, rbc=0)
    u0 = Fun.from_function(lambda x: np.sin(np.pi * x))
    with pytest.warns(DeprecationWarning):
        E = expm(0.1 * L)
    assert isinstance(E, Chebop)
    x = np.linspace(-1.0, 1.0, 51)
    assert np.max(np.abs(E(u0)(x) - expm(L, 0.1, u0)(x))) < 1e-10


@pytest.mark.parametrize("discretization, basis", list(product(discretizations, bases)))
def test_select_discretization(discretization, basis):
    from sepfun.discretization import (
        select_discretization,
        TrigCollocation,
        DISCRETIZATION_TYPES,
    )

    prefs = Preferences(discretization=discretization, basis=basis)
    selected = select_discretization(prefs, periodic=False)
    if basis == "trig":
        assert selected is TrigCollocation
    else:
        assert selected is DISCRETIZATION_TYPES[discretization]
    assert select_discretization(prefs, True, prefs_given=False) is TrigCollocation
