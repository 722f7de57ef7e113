"""Setup configuration for eqtlbma package"""

from setuptools import setup, find_packages

setup(
    name="eqtlbma",
    version="0.1.0",
    author="eqtlbma Development Team",
    description="Multi-subgroup eQTL mapping with Bayesian meta-analysis and permutation tests, with Numba JIT acceleration",
    long_description=open("README.md").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["eqtlbma", "eqtlbma.*"]),
    install_requires=[
        "numpy>=1.19.0",
        "scipy>=1.10.0",
        "pandas>=1.2.0",
        "numba>=0.50.0",
        "joblib>=1.0.0",
    ],
    extras_require={
        # Test suite, with statsmodels as an independent OLS reference
        "test": [
            "pytest>=6.0",
            "statsmodels>=0.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "eqtlbma=eqtlbma.cli.main:main",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
)
