#!/usr/bin/env python
"""
Retail Analytics Warehouse Setup
"""

from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="retail-warehouse",
    version="1.0.0",
    description="Retail sales star schema warehouse with SCD Type 2 dimensions and aggregate refresh",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["src", "src.*", "workflows"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
        "Topic :: Database",
        "Topic :: Scientific/Engineering :: Information Analysis",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "aiosqlite>=0.19.0",
            "httpx>=0.25.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.23.0",
            "aiosqlite>=0.19.0",
            "httpx>=0.25.0",
            "ruff>=0.1.0",
            "mypy>=1.5.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "retail-warehouse-seed=src.ingestion.seed_db:run",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords=[
        "data-warehouse",
        "star-schema",
        "scd",
        "analytics",
        "fastapi",
        "postgresql",
    ],
)
