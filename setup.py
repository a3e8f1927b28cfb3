#!/usr/bin/env python3
"""
Setup script for the Session Recording SDK Python package.
Makes the SDK and its CLI pip-installable.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="session-sdk",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Session recording client: privacy-filtered event capture with batched delivery",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/your-org/session-sdk",
    packages=find_packages(where="scripts"),
    package_dir={"": "scripts"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "session-sdk=session_sdk.cli:main",
        ],
    },
    project_urls={
        "Bug Reports": "https://github.com/your-org/session-sdk/issues",
        "Source": "https://github.com/your-org/session-sdk",
    },
)
