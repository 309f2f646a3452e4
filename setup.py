from setuptools import setup, find_packages

setup(
    name="period_finder",
    version="0.1.0",
    description="Hidden-period detection via OpenCL autocorrelation sums",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    package_data={"period_finder.gpu": ["fourier.cl"]},
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
        "pyopencl>=2022.1",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "period-finder=main:main",
        ]
    },
)
