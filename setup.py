from setuptools import setup, find_packages

setup(
    name="cobranza_service",
    version="0.1.0",
    packages=find_packages(include=["app", "app.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "python-multipart",
        "python-jose[cryptography]",
        "passlib[bcrypt]",
        "bcrypt<5",
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg",
        "alembic",
        "pydantic[email]>=2",
        "pydantic-settings",
        "httpx",
        "apscheduler>=3.10,<4",
        "reportlab",
        "boto3",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "aiosqlite",
        ],
    },
)
