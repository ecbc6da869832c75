from setuptools import setup, find_packages
import pathlib

HERE = pathlib.Path(__file__).parent
README = (HERE / "README.md").read_text(encoding="utf-8")

setup(
    name="hhinject",
    version="1.0.0",
    description="Host header injection probe with baseline comparison, diffing and optional Web UI",
    long_description=README,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(exclude=("tests", "examples")),
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.31.0",
        "httpx>=0.27.0",
        "h2>=4.1.0",
        "colorama>=0.4.6",
        "fastapi>=0.115.0",
        "uvicorn>=0.30.0",
        # FastAPI needs python-multipart to parse the web UI's form posts.
        "python-multipart>=0.0.9",
    ],
    extras_require={
        "test": ["pytest>=7.4"],
    },
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "hhinject=hhinject.cli:main",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Topic :: Security",
        "Environment :: Console",
    ],
)
