"""
Setup script for bloom-mastery-engine.

The engine estimates a learner's mastery of topics across Bloom levels from
graded responses and uses it to:

1. Measure confidence calibration
2. Schedule spaced-repetition reviews
3. Recommend advancing, maintaining or regressing a Bloom level
4. Infer partial mastery of related topics through a knowledge graph

The 'mastery' command is the command line entry point.
"""

from setuptools import find_packages, setup

setup(
    name="bloom-mastery-engine",
    version="1.0.0",
    description="Adaptive mastery estimation and spaced-repetition scheduling engine",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["mastery_engine", "mastery_engine.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
            "neo4j>=5.0.0",
        ],
        "graph": [
            "neo4j>=5.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mastery=mastery_engine.cli.main:app",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning mastery spaced-repetition irt bloom education",
)
