from setuptools import setup

setup(
    name="ilqgames",
    version="0.1.0",
    description="Iterative linear-quadratic solver for general-sum differential games",
    packages=["ilqgames"],
    python_requires=">=3.8",
    install_requires=["numpy", "scipy", "sympy", "matplotlib"],
    extras_require={"test": ["pytest"]},
    zip_safe=False,
)
