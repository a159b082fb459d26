#!/usr/bin/env python3
"""
Setup script for the E-Waste Marketplace backend

Install with:
    pip install -e .

With test tooling:
    pip install -e ".[test]"
"""

from setuptools import setup, find_namespace_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = ""
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")

# API service dependencies
requirements = [
    "fastapi>=0.109.0",
    "uvicorn[standard]>=0.27.0",
    "sqlalchemy[asyncio]>=2.0.25",
    "asyncpg>=0.29.0",
    "aiosqlite>=0.19.0",
    "pydantic[email]>=2.5.0",
    "pydantic-settings>=2.1.0",
    "python-jose[cryptography]>=3.3.0",
    "bcrypt>=4.1.0",
    "aiosmtplib>=3.0.0",
    "pyotp>=2.9.0",
    "qrcode[pil]>=7.4.0",
    "python-dotenv>=1.0.0",
]

test_requirements = [
    "pytest>=7.4.0",
    "pytest-asyncio>=0.23.0",
    "httpx>=0.26.0",
    "faker>=22.0.0",
]

setup(
    name="ewaste-marketplace",
    version="1.0.0",
    description="E-Waste Marketplace - API for buyers, sellers, repair centers and admins",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    package_dir={"": "backend"},
    packages=find_namespace_packages(where="backend", include=["app", "app.*"]),
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements + [
            "black>=24.1.0",
            "isort>=5.13.0",
            "mypy>=1.8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ewaste-create-admin=app.scripts.create_admin:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: FastAPI",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    ],
    keywords="e-waste marketplace repair fastapi",
)
