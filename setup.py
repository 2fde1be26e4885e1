#!/usr/bin/env python3
"""Setup script for taskpilot - plan/approve/execute coding agent."""

from pathlib import Path
from setuptools import find_packages, setup


HERE = Path(__file__).parent

# Read the version without importing the package (its dependencies may be missing)
version_ns = {}
exec((HERE / "taskpilot" / "_version.py").read_text(encoding="utf-8"), version_ns)

requirements = [
    line.strip()
    for line in (HERE / "requirements.txt").read_text(encoding="utf-8").splitlines()
    if line.strip() and not line.startswith("#")
]

setup(
    name="taskpilot",
    version=version_ns["TASKPILOT_VERSION"],
    description="Plan, approve and execute coding tasks with a sandboxed tool executor",
    long_description=(HERE / "README.md").read_text(encoding="utf-8"),
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-mock>=3.10.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "pylint>=2.16.0",
        ],
    },
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "taskpilot=taskpilot.main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
    ],
)
