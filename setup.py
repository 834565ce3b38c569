from setuptools import setup, find_packages

setup(
    name="mavlink-inspector",
    version="0.1.0",
    description="Live MAVLink message inspector with per-type rates and generic field decoding",
    author="AeroLoRa Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "pymavlink>=2.4.40",
        "pyserial>=3.5",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mavlink-inspector=mavlink_inspector.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
