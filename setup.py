from setuptools import setup, find_namespace_packages

setup(
    name="windfarm-mc",
    version="0.1.0",
    description="Monte Carlo financial engine for wind-farm O&M and financing scenarios",
    packages=find_namespace_packages(
        include=["finance", "analytics", "windfarm_mc", "windfarm_mc.*"]
    ),
    py_modules=["constants"],
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.22",
        "numpy-financial>=1.0",
        "pandas>=1.5",
        "pyyaml>=6.0",
        "scipy>=1.9",
    ],
    extras_require={"test": ["pytest>=7"]},
)
