#!/usr/bin/env python3
"""Setup script for netbuf - network buffering hotplug for Remus-protected Xen guests."""

from setuptools import setup, find_packages
import os

# Read requirements
def read_requirements(filename):
    """Read requirements from file."""
    with open(filename) as f:
        return [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Read README for long description
def read_readme():
    """Read README.md for long description."""
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, encoding='utf-8') as f:
            return f.read()
    return ""

setup(
    name="remus-netbuf",
    version="0.1.0",
    description="Network buffer (IFB + plug qdisc) setup and teardown for Remus checkpoint replication",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author="Netbuf Team",
    author_email="",
    license="MIT",

    # Package discovery
    packages=find_packages(include=['netbuf', 'netbuf.*']),

    # Dependencies
    install_requires=read_requirements('requirements.txt'),

    extras_require={
        'dev': read_requirements('requirements-dev.txt') if os.path.exists('requirements-dev.txt') else [],
    },

    # Python version requirement
    python_requires='>=3.8',

    # Classifiers
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: System :: Networking',
        'Topic :: System :: Clustering',
    ],

    # Entry points
    entry_points={
        'console_scripts': [
            'remus-netbuf-setup=netbuf.cli:entry_point',
        ],
    },
)
