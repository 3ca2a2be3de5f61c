from setuptools import setup, find_packages

setup(
    name="academy-quiz-engine",
    version="1.0.0",
    packages=find_packages(exclude=["academy.tests", "academy.tests.*"]),
    package_data={"academy": ["alembic/env.py", "alembic/versions/*.py"]},
    include_package_data=True,
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.22.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "aiosqlite>=0.19.0",
        "asyncpg>=0.28.0",
        "alembic>=1.11.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
        ],
    },
    python_requires=">=3.9",
)
