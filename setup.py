#!/usr/bin/env python3
"""
Setup script for atgsm.
"""

from setuptools import setup, find_packages

setup(
    name="atgsm",
    version="0.1.0",
    description="Python library for driving GSM modems via AT commands (SMS, USSD, calls)",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="Luke",
    url="https://github.com/lm36/atgsm",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "pyserial>=3.5",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-timeout>=2.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "atgsm-cli=atgsm.cli:main",
        ],
    },
    keywords=["gsm", "modem", "sms", "ussd", "at-commands", "pdu", "serial"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Communications :: Telephony",
        "Topic :: System :: Hardware :: Hardware Drivers",
        "Operating System :: POSIX :: Linux",
        "License :: OSI Approved :: MIT License",
    ],
)
