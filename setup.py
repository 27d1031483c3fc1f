#!/usr/bin/env/python

"""
setup.py

===============================================================================

    Copyright (C) 2019 Rudolf Cardinal (rudolf@pobox.com).

    This file is part of uniadmin_tools.

    This is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License, or
    (at your option) any later version.

    This software is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
    GNU General Public License for more details.

    You should have received a copy of the GNU General Public License
    along with this software. If not, see <https://www.gnu.org/licenses/>.

===============================================================================

Python package configuration.

"""

from setuptools import setup, find_packages

from uniadmin_tools.version import VERSION

setup(
    name="uniadmin_tools",
    version=VERSION,
    description="Allocate students to projects; reconcile committee scores",
    url="https://github.com/RudolfCardinal/uniadmin_tools.git",
    author="Rudolf Cardinal",
    author_email="rudolf@pobox.com",
    license="GNU General Public License v3 or later (GPLv3+)",
    # See https://pypi.org/classifiers/
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Education",
        "License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)",  # noqa
        "Natural Language :: English",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Topic :: Education",
    ],
    # Python code:
    packages=find_packages(),
    # Static files:
    # https://stackoverflow.com/questions/11848030/how-include-static-files-to-setuptools-python-package
    package_data={
        "uniadmin_tools": ["testdata/*"],
    },
    # Requirements:
    python_requires=">=3.10",
    install_requires=[
        "arviz>=0.17",  # posterior diagnostics (R-hat)
        "cardinal_pythonlib>=1.1.23",
        "lxml>=4.9.1",  # Will speed up openpyxl export
        "mip>=1.15.0",  # integer programming, with the CBC solver
        "numpy>=1.24",
        "openpyxl>=3.0.10",
        "pymc>=5.10",  # reconciliation model and MCMC sampling
        "pytensor>=2.18",  # comes with pymc; used directly for constants
        "rich-argparse>=0.5.0",  # colourful help
        "scipy>=1.10.1",  # used by others, but also for rankdata
    ],
    extras_require={
        "test": [
            "pytest>=7.1.1",  # automatic testing
        ],
        # -------------------------------------------------------------------------
        # For development:
        # -------------------------------------------------------------------------
        "dev": [
            "black>=24.3.0",  # auto code formatter
            "flake8>=3.8.3",  # code checks
            "pytest>=7.1.1",  # automatic testing
        ],
    },
    # Launch scripts:
    entry_points={
        "console_scripts": [
            # Format is 'script=module:function".
            "projalloc=uniadmin_tools.projalloc:main",
            "scorerecon=uniadmin_tools.scorerecon:main",
            "uniadmin_tools_run_tests=uniadmin_tools.run_tests:main",
        ],
    },
)
