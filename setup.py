from setuptools import setup, find_packages

setup(
    name="geostake",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "pydantic>=2.0.0",
        "loguru>=0.7.0",
        "Click>=8.0",
        "aiohttp>=3.8.0",
        "httpx>=0.26.0",
        "web3>=7.0.0",
        "eth-account>=0.13.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "geostake=geostake.main:cli",
        ],
    },
    python_requires=">=3.9",
    author="GeoStake Team",
    description="Stake tokens on a location; claim them by being there",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
    ],
)
