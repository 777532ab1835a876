#!/usr/bin/env python3
"""
Setup script for mailwire.

Install with `pip install .` or `pip install -e '.[dev]'` for development.
"""

import sys

if sys.version_info < (3, 11):
    sys.exit("Error: mailwire requires Python 3.11 or higher.")

import re
from pathlib import Path

from setuptools import find_packages, setup

here = Path(__file__).parent

version_file = here / "src" / "mailwire" / "__version__.py"
version_match = re.search(
    r'^__version__\s*=\s*["\']([^"\']+)["\']',
    version_file.read_text(encoding="utf-8"),
    re.M,
)
version = version_match.group(1) if version_match else "0.1.0"

readme_path = here / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")
    long_description_content_type = "text/markdown"
else:
    long_description = "MIME message encoder and SMTP sender"
    long_description_content_type = "text/plain"

# Core dependencies
install_requires = [
    "aiosmtplib>=3.0.0",
    "pydantic>=2.5.0",
    "pydantic-settings>=2.1.0",
    "cryptography>=41.0.0",
]

# Development dependencies
extras_require = {
    "dev": [
        "pytest>=7.4.0",
        "pytest-cov>=4.1.0",
        "aiosmtpd>=1.4.4",
        "black>=23.0.0",
        "flake8>=6.1.0",
        "mypy>=1.7.0",
    ],
}

setup(
    name="mailwire",
    version=version,
    description="MIME message encoder and SMTP sender",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    license="MIT",
    python_requires=">=3.11",
    packages=find_packages("src"),
    package_dir={"": "src"},
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "mailwire=mailwire.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Communications :: Email",
    ],
    keywords=["email", "mime", "smtp", "starttls"],
)
