"""
rrdpipe - rrdtool remote-control client

Drives a long-lived `rrdtool -` process over its line protocol.
"""

from setuptools import setup, find_packages

with open("README.md") as f:
    long_description = f.read()

setup(
    name="rrdpipe",
    version="1.0.0",
    description="rrdtool remote-control client",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="rrdpipe Team",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "examples", "*.tests", "*.examples"]),
    install_requires=[
        "pyyaml>=5.4",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "rrdpipe=rrdpipe.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: System :: Monitoring",
    ],
)
