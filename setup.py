# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.
# pylint: disable=invalid-name
"""Setup schedtune package."""
import os
import re

from setuptools import find_packages, setup

CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))


def get_version():
    """Get the version from the package without importing it"""
    init_py = os.path.join(CURRENT_DIR, "python", "schedtune", "__init__.py")
    with open(init_py, encoding="utf-8") as ifile:
        match = re.search(r'^__version__ = "([^"]+)"', ifile.read(), re.M)
    if match is None:
        raise RuntimeError(f"Cannot find __version__ in {init_py}")
    return match.group(1)


def long_description_contents():
    with open(os.path.join(CURRENT_DIR, "README.md"), encoding="utf-8") as readme:
        description = readme.read()

    return description


requirements = {
    "core": [
        "numpy",
        "psutil",
        "typing_extensions",
        "xgboost>=1.6.0",
    ],
    "test": [
        "pytest",
    ],
}

setup(
    name="schedtune",
    version=get_version(),
    description="Per-task schedule tuning for lowered tensor programs",
    long_description=long_description_contents(),
    long_description_content_type="text/markdown",
    author="Apache TVM",
    license="Apache",
    # See https://pypi.org/classifiers/
    classifiers=[
        "License :: OSI Approved :: Apache Software License",
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
    ],
    keywords="machine learning",
    zip_safe=False,
    python_requires=">=3.8",
    install_requires=requirements["core"],
    extras_require={"test": requirements["test"]},
    packages=find_packages("python"),
    package_dir={"": "python"},
    entry_points={
        "console_scripts": ["schedtune-query-db = schedtune.exec.query_database:main"]
    },
)
