"""Packaging for the FloHub calendar aggregation service."""

from pathlib import Path

from setuptools import find_packages, setup
from setuptools.command.develop import develop
from setuptools.command.install import install

HERE = Path(__file__).parent
TEST_MARKERS = ("pytest",)


def read_requirements(path):
    """Split requirements.txt into runtime and test requirements."""
    runtime, testing = [], []
    if not path.exists():
        return runtime, testing

    for raw_line in path.read_text(encoding="utf-8").splitlines():
        requirement = raw_line.split("#", 1)[0].strip()
        if not requirement:
            continue
        target = testing if requirement.startswith(TEST_MARKERS) else runtime
        target.append(requirement)
    return runtime, testing


def create_user_dirs():
    """Create the default config and data directories for the installing user."""
    dirs = {
        "Config": Path.home() / ".config" / "flohub",
        "Data": Path.home() / ".local" / "share" / "flohub",
    }
    try:
        for path in dirs.values():
            path.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as e:
        print(f"Warning: could not create FloHub directories: {e}")
        return

    for label, path in dirs.items():
        print(f"{label} directory: {path}")
    if not (dirs["Config"] / "config.yaml").exists():
        print("Set FLOHUB_* environment variables or add config.yaml, then run 'flohub serve'.")


class InstallWithDirs(install):
    """Install, then create the user's FloHub directories."""

    def run(self):
        super().run()
        create_user_dirs()


class DevelopWithDirs(develop):
    """Editable install, then create the user's FloHub directories."""

    def run(self):
        super().run()
        create_user_dirs()


install_requires, test_requires = read_requirements(HERE / "requirements.txt")
readme = HERE / "README.md"

setup(
    name="flohub",
    version="1.0.0",
    description="Multi-source calendar aggregation for Google, Microsoft 365, webhooks and iCal",
    long_description=readme.read_text(encoding="utf-8") if readme.exists() else "",
    long_description_content_type="text/markdown",
    author="FloHub Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=install_requires,
    extras_require={"test": test_requires, "dev": test_requires},
    python_requires=">=3.9",
    entry_points={"console_scripts": ["flohub=flohub.__main__:main"]},
    cmdclass={"install": InstallWithDirs, "develop": DevelopWithDirs},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: aiohttp",
        "Framework :: AsyncIO",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Office/Business :: Scheduling",
    ],
    keywords="calendar aggregation google-calendar microsoft-graph power-automate ical",
    zip_safe=False,
)
