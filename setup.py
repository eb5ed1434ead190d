#!/usr/bin/env python3
"""
Setup configuration for proxscan
"""

from setuptools import setup, find_packages
import os
from pathlib import Path

# Read the full description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8') if (this_directory / "README.md").exists() else ""

# Read the version from __init__.py file
def get_version():
    """Get the version from __init__.py file"""
    version_file = os.path.join(os.path.dirname(__file__), 'proxscan', '__init__.py')
    try:
        with open(version_file, 'r', encoding='utf-8') as f:
            for line in f:
                if line.strip().startswith('__version__'):
                    # Extract the version from the string
                    return line.split('=')[1].strip().strip('"').strip("'")
    except FileNotFoundError:
        pass
    return "1.0.0"  # Default version

# Essential required dependencies
REQUIRED = [
    "click>=8.0.0",          # CLI interface
    "aiohttp>=3.9.0",        # Asynchronous proxy tests and geolocation
    "rich>=13.0.0",          # Progress display and result tables
    "pyyaml>=6.0",           # Configuration files
]

# Optional dependencies for advanced features
EXTRAS = {
    'geolocation': [
        "geoip2>=4.6.0",       # Local MaxMind database lookups
    ],
    'dev': [
        "pytest>=7.0.0",
        "pytest-asyncio>=0.21.0",
        "pytest-cov>=4.0.0",
        "black>=22.0.0",
        "flake8>=5.0.0",
        "mypy>=1.0.0",
    ]
}

setup(
    # Basic package information
    name="proxscan",
    version=get_version(),
    description="Subnet scanner that finds, tests and ranks open HTTP proxies",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # License and classifications
    license="MIT",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Internet :: Proxy Servers",
        "Topic :: System :: Networking",
    ],
    keywords="proxy, scanner, subnet, http, geolocation, networking",

    # Python requirements
    python_requires=">=3.10",

    # Packages and files
    packages=find_packages(exclude=["tests", "tests.*"]),

    # Dependencies
    install_requires=REQUIRED,
    extras_require=EXTRAS,

    # Entry points (Console Scripts)
    entry_points={
        'console_scripts': [
            'proxscan=proxscan.main:main',
        ],
    },

    zip_safe=False,
    platforms=["any"],
)
