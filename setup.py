"""Setup script for the icsfeed_lite ICS expansion engine."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

requirements = [
    "pydantic>=2.0",
    "icalendar>=5.0,<7",
    "python-dateutil>=2.8.2",
    "PyYAML>=6.0",
    "colorlog>=6.7.0",
    # zoneinfo needs tz data on platforms without a system database
    "tzdata; platform_system == 'Windows'",
]

dev_requirements = [
    "pytest>=7.4.0",
    "pytest-asyncio>=0.21.0",
]

setup(
    name="icsfeed-lite",
    version="0.1.0",
    description="Expands iCalendar feeds into concrete, window-bounded event occurrences",
    long_description=long_description,
    long_description_content_type="text/markdown",
    # Package configuration
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar ics icalendar rrule recurrence expansion",
    entry_points={
        "console_scripts": [
            "icsfeed-lite=icsfeed_lite.__main__:main",
        ],
    },
    zip_safe=False,
)
