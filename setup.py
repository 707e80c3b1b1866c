"""
Setup configuration for the CPPI Options Bot and Backtester

Install in development mode:
    pip install -e .[dev]

Install for production:
    pip install .
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / 'README.md'
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding='utf-8')

setup(
    name="cppi-options-backtester",
    version="1.0.0",
    description="CPPI sleeve policy and synthetic options backtester",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="CPPI Options Bot Team",
    license="MIT",

    packages=find_packages(exclude=["tests", "tests.*"]),

    # Core dependencies
    install_requires=[
        "numpy>=2.0.2",
        "pandas>=2.3.3",
        "scipy>=1.13.1",
        "matplotlib>=3.9.4",
        "pyyaml>=6.0",
        "click>=8.1.0",
        "rich>=13.0.0",
    ],

    # Development dependencies
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.0.0",
        ],
    },

    # Python version requirement
    python_requires=">=3.9",

    # Package classifiers
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Financial :: Investment",
    ],

    # Keywords for package discovery
    keywords="options cppi portfolio-insurance backtesting finance",

    entry_points={
        "console_scripts": [
            "cppi-bot=cppi_backtester.cli.cli:main",
        ],
    },

    zip_safe=False,
)
