"""Home Dashboard setup."""
import os
from pathlib import Path

from setuptools import find_packages, setup

PROJECT_NAME = "Home Dashboard"
PROJECT_PACKAGE_NAME = "homedash"
PROJECT_VERSION = "0.4.0"
PROJECT_REQ_PYTHON_VERSION = "3.11"
PROJECT_LICENSE = "Apache License 2.0"

PROJECT_DIR = Path(__file__).parent.resolve()
README_FILE = PROJECT_DIR / "README.md"
REQUIREMENTS_FILE = PROJECT_DIR / "requirements.txt"
REQUIREMENTS_TEST_FILE = PROJECT_DIR / "requirements_test.txt"
PACKAGES = find_packages(exclude=["tests", "tests.*"])
PACKAGE_FILES = []
for (path, directories, filenames) in os.walk("homedash/"):
    for filename in filenames:
        PACKAGE_FILES.append(os.path.join("..", path, filename))


def read_requirements(filename: Path) -> list[str]:
    """Return the requirements listed in a requirements file."""
    return [
        line.strip()
        for line in filename.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.startswith(("#", "-"))
    ]


setup(
    name=PROJECT_PACKAGE_NAME,
    version=PROJECT_VERSION,
    description="Home dashboard backend keeping a Sonos topology in sync",
    license=PROJECT_LICENSE,
    long_description=README_FILE.read_text(encoding="utf-8"),
    long_description_content_type="text/markdown",
    packages=PACKAGES,
    include_package_data=True,
    zip_safe=False,
    install_requires=read_requirements(REQUIREMENTS_FILE),
    extras_require={"test": read_requirements(REQUIREMENTS_TEST_FILE)},
    python_requires=f">={PROJECT_REQ_PYTHON_VERSION}",
    test_suite="tests",
    package_data={"homedash": PACKAGE_FILES},
    entry_points={"console_scripts": ["homedash=homedash.__main__:main"]},
)
