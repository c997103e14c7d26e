from setuptools import setup, find_packages

setup(
    name="price-forecast-engine",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["models", "config", "errors", "pipeline"],
    install_requires=[
        "numpy",
        "pandas",
        "arch",
        "matplotlib",
        "seaborn",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
) 
