from __future__ import annotations

from setuptools import find_packages, setup

setup(
    name="symfci",
    version="0.1.0",
    description="Symmetry-blocked determinant FCI engine with numba kernels",
    python_requires=">=3.10",
    packages=find_packages(include=["symfci", "symfci.*"]),
    install_requires=[
        "numpy>=1.23",
        "scipy>=1.9",
        "numba>=0.57",
        "threadpoolctl>=3.1",
    ],
    extras_require={"test": ["pytest>=7"]},
)
