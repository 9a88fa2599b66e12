from setuptools import setup, find_packages

if __name__ == "__main__":
    setup(
        name='sepfun',
        description="Low-rank separable approximation of functions and exponential semigroups of linear differential operators.",
        python_requires='>=3.9',
        version='0.0.1',
        packages=find_packages(where='src'),
        package_dir={'': 'src'},
        install_requires=[
            'numpy>=1.22.4',
            'numba>=0.58.1',
            'scipy>=1.7.1',
        ],
        extras_require={
            'test': ['pytest>=8.2.2'],
        },
    )
