"""
Setup script for omicsmath package.
"""

from setuptools import setup, find_packages

setup(
    name="omicsmath",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        # Core numerical dependencies
        "numpy>=1.22.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",

        # Payload validation
        "pydantic>=1.8.0",

        # Utilities
        "pyyaml>=6.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=6.0.0",
            "scikit-learn>=1.0.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'omicsmath=omicsmath.__main__:main',
        ],
    },
    description="Statistical compute engine for the omics exploration dashboard",
    keywords="pca, correlation, compositional data, level of detail, omics",
    python_requires=">=3.8",
)
