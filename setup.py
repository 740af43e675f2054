from setuptools import setup, find_packages

setup(
    name="symbol-finder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml",
        # Term relationship graph
        "networkx>=3.0",
        # Typo detection (edit distance)
        "rapidfuzz>=3.0",
        # Workspace change watching
        "watchdog>=3.0",
        "tqdm>=4.60",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "symfind=symbol_finder.cli:main",
        ],
    },
    author="Uday Kanth",
    description="Hybrid symbol search over a persistent index and local workspace files.",
)
