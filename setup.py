import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="scroll-stitch",
    version="0.1.0",
    description="Library for capturing scrolling screen content and stitching it into one image.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=["scroll_stitch"],
    python_requires=">=3.10",
    install_requires=[
        "click",
        "numpy",
        "pillow",
    ],
    extras_require={
        "desktop": ["pyautogui"],
        "debug": ["matplotlib"],
        "test": ["matplotlib", "pytest", "pytest-benchmark"],
    },
    entry_points={
        "console_scripts": ["scroll-stitch=scroll_stitch.__main__:cli"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
)
