from setuptools import setup, find_packages


setup(
    name="imgarchive",
    version="0.1",
    packages=find_packages(include=["imgarchive", "imgarchive.*"]),
    description="Read, edit and defragment block-addressed IMG archives (VER1 .dir/.img and VER2 .img).",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "imgarchive=imgarchive.cli:main",
        ]
    },
)
