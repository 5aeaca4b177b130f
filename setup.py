# setup.py
"""Setup script for Workflow Compiler."""

from setuptools import setup, find_packages

setup(
    name="workflow-compiler",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "click>=8.0",
        "pyyaml>=6.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "jinja2>=3.0",
        "structlog>=23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=23.0",
            "flake8>=6.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "workflow-compile=cli.main:cli",
            "wfc=cli.main:cli",  # Short alias
        ],
    },
    python_requires=">=3.9",
)
