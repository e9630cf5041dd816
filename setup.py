from setuptools import setup, find_packages
import pathlib

# Detect layout
use_src = pathlib.Path("src/bookmap").exists()
pkg_args = {"package_dir": {"": "src"}, "packages": find_packages(where="src")} if use_src \
           else {"packages": find_packages(where=".")}

setup(
    name="bookmap",
    version="0.1.0",
    description="Field-mapping and formula engine for booking imports",
    python_requires=">=3.9",
    include_package_data=True,
    install_requires=[
        "typer",
        "PyYAML",
        "pydantic>=2",
        "jsonschema",
        "pandas",
        "email-validator>=2",
    ],
    extras_require={
        "excel": ["openpyxl"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["bookmap=bookmap.cli:app"],
    },
    **pkg_args
)
