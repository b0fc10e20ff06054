#!/usr/bin/env python

import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="python-refhash",
    version="1.0.0",
    author="Sir Wabbit",
    author_email="wabbit@wabbit.one",
    description="Dictionaries keyed by object identity as well as by value",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/wabbit-corp/python-refhash",
    packages=["refhash"],
    python_requires=">=3.10",  # code uses match/case
    install_requires=[],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3.10",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
