"""Setup script for the gpuhealth package."""

from setuptools import find_packages, setup

setup(
    name="gpuhealth",
    version="0.1.0",
    description="Accelerator telemetry analytics: history, trends, health scores and alerts",
    author="GPU Health Team",
    packages=find_packages(include=["gpuhealth", "gpuhealth.*"]),
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "nats-py>=2.7.0",
        "numpy>=1.26.0",
        "nvidia-ml-py>=12.535.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "structlog>=24.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.26.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "gpuhealth=gpuhealth.service:main",
        ],
    },
    python_requires=">=3.10",
)
