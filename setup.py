"""Setup script for docker2lm"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="docker2lm",
    version="0.1.0",
    author="docker2lm",
    author_email="admin@localhost.local",
    description="Ships Docker container logs and stats to a remote log intake",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Logging",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "aiodocker>=0.21",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "python-dateutil>=2.8",
        "click>=8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "aiohttp>=3.8",
        ],
    },
    entry_points={
        "console_scripts": [
            "docker2lm=docker2lm.main:cli",
        ],
    },
)
