# setup.py - Pure Python package, numpy-backed
from setuptools import setup, find_packages

setup(
    name="sdr_classifier",
    version="0.1.0",
    description="Online multi-step SDR classifier with softmax bucket predictions",
    packages=find_packages(include=["sdr_classifier", "sdr_classifier.*"]),
    python_requires=">=3.8",
    install_requires=["numpy"],
    extras_require={"test": ["pytest"]},
)
