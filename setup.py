from setuptools import setup, find_packages

setup(
    name="tally",
    version="0.1.0",
    packages=find_packages(include=["tally", "tally.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "starlette",
        "uvicorn",
        "pydantic>=2",
        "pydantic-settings>=2.3",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite",
        "asyncpg",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
