from setuptools import setup, find_packages

setup(
    name="artifact-archive",
    version="0.1.0",
    description="Deduplicating, self-verifying archives for CI build and test artifacts",
    author="artifact-archive",
    author_email="no-reply@example.com",
    packages=find_packages(include=["artifact_archive", "artifact_archive.*"]),
    install_requires=[
        "pydantic>=2.0",  # Configuration and archive document models
        "brotli>=1.1.0",  # Brotli codec
        "requests",  # Backend upload client
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "artifact-archive=artifact_archive.cli:main"
        ]
    },
)
