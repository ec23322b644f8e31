"""
Setup script for the PodSet Operator
"""

from setuptools import setup, find_packages

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="podset-operator",
    version="0.1.0",
    author="PodSet Operator Team",
    description="Kubernetes operator that keeps a PodSet's pod count equal to its declared replicas",
    long_description="PodSet Operator watches PodSet custom resources and the pods they own, and converges the number of live pods toward spec.replicas through a rate-limited work queue and a pool of reconcile workers.",
    long_description_content_type="text/plain",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Clustering",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-mock>=3.12.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.5.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "podset-operator=podset_operator.main:main",
        ],
    },
)
