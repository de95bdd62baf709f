#!/usr/bin/env python3
"""Setup script for StoryWeave."""

from setuptools import setup, find_packages

setup(
    name="storyweave",
    version="1.0.0",
    description="A node-based canvas for planning stories",
    author="StoryWeave Project",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[],
    extras_require={
        # The editing engine is headless; the desktop app needs GTK 4
        "gui": [
            "PyGObject>=3.46.0",
            "pycairo>=1.25.0",
        ],
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "storyweave=storyweave.launcher:main",
        ],
        "gui_scripts": [
            "storyweave-gui=storyweave.launcher:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: X11 Applications :: GTK",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Topic :: Text Editors",
    ],
)
