import io
import os
import re

from setuptools import find_packages, setup


with io.open("flask_admingen/__init__.py", "rt", encoding="utf8") as f:
    version = re.search(r"__version__ = \"(.*?)\"", f.read()).group(1)


def fpath(name):
    return os.path.join(os.path.dirname(__file__), name)


def read(fname):
    return open(fpath(fname)).read()


def desc():
    return read("README.rst")


setup(
    name="Flask-AdminGen",
    version=version,
    license="BSD",
    author="AdminGen contributors",
    description=(
        "Schema introspection and generic CRUD handlers for admin panels,"
        " built on top of SQLAlchemy and Flask."
    ),
    long_description=desc(),
    long_description_content_type="text/x-rst",
    packages=find_packages(exclude=["tests*"]),
    include_package_data=True,
    zip_safe=False,
    platforms="any",
    install_requires=[
        "Flask>=2, <4",
        "Flask-SQLAlchemy>=3, <4",
        "SQLAlchemy>=2.0, <3",
        "marshmallow>=3.18.0, <5",
        "inflect>=6, <8",
        "python-dateutil>=2.3, <3",
    ],
    extras_require={
        "testing": ["pytest>=7"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.9",
)
