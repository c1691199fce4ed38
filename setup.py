from setuptools import setup, find_packages

setup(
    name="localnet",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pydantic>=2",
        "pydantic-settings",
        "structlog",
        "click",
        "PyYAML",
        "cryptography",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "localnet=localnet.cli:main",
        ],
    }
)
