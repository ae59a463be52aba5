#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Setup script for the FuelEU compliance ledger
"""

from pathlib import Path

from setuptools import find_packages, setup

VERSION = "1.0.0"

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")
else:
    long_description = (
        "FuelEU Maritime compliance ledger: compliance balances, banking and pooling"
    )

setup(
    name="fueleu-ledger",
    version=VERSION,
    description="FuelEU Maritime compliance balance, banking and pooling ledger",
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires=">=3.9",
    packages=find_packages(include=["fueleu_ledger", "fueleu_ledger.*"]),
    install_requires=[
        "pydantic>=2.0",
        "sqlalchemy>=2.0",
        "prometheus-client>=0.17",
        "fastapi>=0.100",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24",
        ],
        "postgres": [
            "psycopg[binary]>=3.1",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: FastAPI",
        "Topic :: Scientific/Engineering :: Atmospheric Science",
    ],
)
