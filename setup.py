"""Setup configuration for KOH Backup."""

import os
import sys

from setuptools import find_packages, setup

# Get version from package
here = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, here)
try:
    from kohbackup import __author__, __version__
except ImportError:
    __version__ = "2.1.0"
    __author__ = "KOH Team"

# Get the long description from the README file
with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="koh-backup",
    version=__version__,
    description="Backup and restore of JTL-Shop style web projects (MySQL + files)",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author=__author__,
    keywords="backup restore mysql jtl-shop cli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"kohbackup": ["templates/*.j2"]},
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "click>=8.0.0",
        "pyyaml>=6.0",
        "jinja2>=3.0.0",
        "jsonschema>=4.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.12.0",
            "mypy>=0.991",
        ],
    },
    entry_points={
        "console_scripts": [
            "koh-backup=kohbackup.cli:cli",
        ],
    },
)
