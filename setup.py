"""Setup configuration for the Ferrocord Discord bot."""

from setuptools import setup, find_packages

setup(
    name="ferrocord",
    version="0.1.0",
    description="A Discord community bot with a tag knowledge base and a rate-limited command pipeline",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.4",
        "aiosqlite>=0.19",
        "aiohttp>=3.9",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "ferrocord=ferrocord.main:main",
        ],
    },
)
