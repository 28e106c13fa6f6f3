"""Setup script for bucket-replication-sync package."""
from pathlib import Path

from setuptools import setup, find_packages

readme = Path(__file__).parent / "README.md"

setup(
    name="bucket-replication-sync",
    version="0.1.0",
    description="Reconcile declared bucket replication rules and remote targets with an object storage cluster",
    long_description=readme.read_text() if readme.exists() else "",
    long_description_content_type="text/markdown",
    author="Bucket Replication Sync Team",
    license="AGPL-3.0",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.31.0",
        "pydantic>=2.5.0",
        "tenacity>=8.2.3",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.12.0",
            "black>=23.12.0",
            "flake8>=7.0.0",
            "mypy>=1.8.0",
            "isort>=5.13.2",
            "responses>=0.24.1",
        ],
        "test": [
            "pytest>=7.4.3",
            "pytest-mock>=3.12.0",
            "responses>=0.24.1",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: GNU Affero General Public License v3",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
