"""
ytclip — setuptools build script.

Installs the extraction API server and its `ytclip` launcher.

Usage:
    # Development (editable):
    pip install -e ".[test]"

    # Run the server:
    ytclip            # or: python3 main.py
"""

from setuptools import setup

APP_NAME = "ytclip"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Section-aware MP3 extraction service built on yt-dlp",
    packages=[
        "ytclip",
        "ytclip.core",
        "ytclip.web",
    ],
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "pydantic>=2.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "ytclip=main:main",
        ],
    },
)
