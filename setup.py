from setuptools import find_packages, setup

setup(
    name="reqlog",
    version="1.0.0",
    description="Request-scoped structured logging for Starlette / FastAPI services",
    author="BPT Team",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        # HTTP dependencies
        "fastapi>=0.110.0",
        "httpx>=0.25.0",
        # Logging dependencies
        "structlog>=23.2.0",
        "python-json-logger>=2.0.7",
        # Config dependencies
        "pydantic>=2.10.0",
        "pydantic-settings>=2.7.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
    ],
)
