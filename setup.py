from setuptools import find_packages, setup

setup(
    name="ilqgames",
    version="0.1.0",
    description="Iterative linear-quadratic approximations for general-sum differential games",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "scipy",
        "sympy",
        "torch",
    ],
    extras_require={
        "test": ["pytest"],
    },
    zip_safe=False,
)
