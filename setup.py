"""Setup configuration for creative-sync package."""

from setuptools import setup, find_packages

setup(
    name="creative-sync",
    version="1.0.0",
    description="Creative synchronization and placement-aware ad assembly for Meta Ads",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="Creative Sync Team",
    python_requires=">=3.9",
    packages=find_packages(where=".", include=["creative_sync*"]),
    package_dir={"": "."},
    install_requires=[
        "python-dotenv==1.0.1",
        "PyYAML==6.0.2",
        "requests==2.32.3",
        "supabase>=2.5.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "creative-sync=creative_sync.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
