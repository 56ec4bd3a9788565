"""Setup file for scidraft."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="scidraft",
    version="0.1.0",
    author="SciDraft Team",
    description="Lab report drafting API with payment gating and an admin back-office",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/scidraft/scidraft",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        "alembic>=1.13.0",
        "openai>=1.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",
        "typer>=0.9.0",
        "loguru>=0.7.0",
        "requests>=2.31.0",
        "slowapi>=0.1.9",
        "bcrypt>=4.0.0",
        "cachetools>=5.3.0",
    ],
    extras_require={
        "test": ["pytest>=7.4.0", "httpx>=0.25.0"],
    },
    entry_points={
        "console_scripts": [
            "scidraft=scidraft.cli:main",
        ],
    },
)
