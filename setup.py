from setuptools import setup

with open("README.md", "r") as f:
    long_description = f.read()

setup(
    name="pyrobocam",
    version="2025.1.0",
    description="Python package for viewing a robot camera over WebRTC",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Licensed under the MIT license. See LICENSE file for details",
    packages=["pyrobocam"],
    package_dir={"pyrobocam": "pyrobocam"},
    python_requires=">=3.10",
    install_requires=["aiohttp", "aiortc", "yarl"],
    extras_require={"test": ["pytest", "pytest-asyncio"]},
)
