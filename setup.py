"""Setup script for claudepod."""
from pathlib import Path

from setuptools import find_packages, setup


README = Path(__file__).parent / "README.md"


setup(
    name="claudepod",
    version="0.1.0",
    description=(
        "Persistent, per-project development containers built from declarative "
        "TOML profiles."
    ),
    long_description=README.read_text(encoding="utf-8") if README.exists() else "",
    long_description_content_type="text/markdown",
    python_requires=">=3.11",
    packages=find_packages(include=["claudepod", "claudepod.*"]),
    package_data={"claudepod.env": ["templates/*.j2"]},
    include_package_data=True,
    install_requires=[
        "colorama>=0.4",
        "jinja2>=3.1",
        "pydantic>=2.5",
        "tomlkit>=0.12",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "claudepod = claudepod.__main__:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Environment :: Console",
        "Operating System :: POSIX :: Linux",
        "Topic :: Software Development",
    ],
)
