"""
Setup configuration for CamPush package.
"""

from setuptools import setup, find_packages

# Read README for long description
try:
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = "Publish local cameras and microphones to a streaming hub as independent streams"


def get_extras():
    """Get optional dependency groups."""
    extras = {
        "tui": [
            "textual>=0.41.0",  # Terminal UI framework
        ],
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
            "pytest-mock>=3.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.900",
            "ruff>=0.1.0",
            "textual>=0.41.0",
        ],
        "test": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
            "pytest-mock>=3.0",
            "pytest-xdist>=2.0",
            "textual>=0.41.0",
        ],
    }

    extras["all"] = [
        "textual>=0.41.0",
    ]

    return extras


# Core dependencies required on all platforms
install_requires = [
    "click>=8.0.0",  # CLI framework
    "aiohttp>=3.8.0",  # Hub API client and control channel
    "pyudev>=0.21.0; sys_platform == 'linux'",  # Capture device enumeration via udev
]

setup(
    name="campush",
    version="0.1.0",
    author="CamPush Development Team",
    description="Publish local cameras and microphones to a streaming hub as independent streams",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Video :: Capture",
        "Topic :: Multimedia :: Sound/Audio :: Capture/Recording",
        "Framework :: AsyncIO",
    ],
    keywords="camera microphone streaming whip publisher hub",
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=get_extras(),
    entry_points={
        "console_scripts": [
            "campush=campush.cli:main",
        ],
    },
    zip_safe=False,
)
