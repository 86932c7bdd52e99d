"""Setup script for the database containerizer."""
from setuptools import find_packages, setup


setup(
    name="database-containerizer",
    version="1.0.0",
    description=(
        "Restore a SQL Server backup and publish its schema project, dacpac, EF Core "
        "model package and build manifest."
    ),
    packages=find_packages(include=["dbcontainerizer", "dbcontainerizer.*"]),
    python_requires=">=3.11",
    install_requires=[
        "colorama",
        "psutil",
        "pydantic>=2",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "dbcontainerizer = dbcontainerizer.__main__:main",
        ],
    },
)
