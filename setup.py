"""Package metadata for locket (src/ layout, console script `locket`)."""

from setuptools import find_packages, setup

setup(
    name="locket",
    version="1.0.0",
    description="A simple local password manager with fuzzy search and an HTTP API",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.11",
    install_requires=[
        "click>=8.1",
        "rich>=13.0",
        "msgpack>=1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["locket=locket.cli:main"],
    },
)
