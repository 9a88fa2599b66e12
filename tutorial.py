### Tutorial : Short Version

# import numpy as np
# from sepfun import Chebfun2

# # Function f to approximate
# def f(x, y):
#     return np.cos(x * y)

# # Low-rank approximation by cross approximation
# F = Chebfun2(f, domain=(-3, 4, -1, 10))

# # Column, diagonal, row decomposition
# C, D, R = F.cdr()

# # Evaluate at random points
# x, y = np.random.rand(10), np.random.rand(10)
# values = F(x, y)


### Tutorial

import time
import numpy as np
from sepfun import Chebfun2, Chebop, Fun, expm

# Low-rank approximation of a function of two variables
start = time.time()
F = Chebfun2(lambda x, y: np.cos(x * y), domain=(-3, 4, -1, 10))
print("Chebfun2:", "{:.2f}".format((time.time() - start) * 1000), "ms")
print(f"rank = {F.rank}, lengths = {F.lengths()}")

# The decomposition reproduces the function
C, D, R = F.cdr()
x, y = -3 + 7 * np.random.rand(10), -1 + 11 * np.random.rand(10)
cdr = sum(C[i](x) * D[i, i] * R[i](y) for i in range(F.rank))
print("max |cdr - f| =", "{:.2e}".format(np.max(np.abs(cdr - np.cos(x * y)))))

# Heat equation u_t = u_xx with homogeneous Dirichlet conditions
L = Chebop(lambda u: u.diff(2), (-1, 1), lbc=0, rbc=0)
u0 = Fun.from_function(lambda x: np.exp(-20 * (x + 0.3) ** 2))
t = [0, 0.001, 0.01, 0.1, 0.5, 1]

start = time.time()
U = expm(L, t, u0)
print("expm:", "{:.2f}".format((time.time() - start) * 1000), "ms")

# The maximum decreases in time
for s, u in zip(t, U):
    print(f"t = {s:<6} max |u| = {u.max_abs():.4f}, length = {len(u)}")
