"""
Setup file.
"""

import os

from setuptools import setup

URL = "https://github.com/sketchbuild/sketchbuild"
KEYWORDS = "embedded arduino fqbn sketch compiler recipes boards.txt platform.txt firmware"
HERE = os.path.dirname(os.path.abspath(__file__))


if __name__ == "__main__":
    setup(
        maintainer="sketchbuild developers",
        keywords=KEYWORDS,
        url=URL,
        include_package_data=True)
